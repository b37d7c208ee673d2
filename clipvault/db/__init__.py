from .models import build_clip_model
from .repository import ClipRepository, SqlAlchemyClipRepository

__all__ = [
    "build_clip_model",
    "ClipRepository",
    "SqlAlchemyClipRepository",
]
