"""Client-side request orchestration for the photo editor proxy."""

from .api import PhotoEditorClient
from .context import EditorContext
from .conversation import ConversationState, ConversationTurn
from .images import ImagePayload, ImagePreparer
from .rate_limiter import RateLimitStatus, SlidingWindowRateLimiter
from .responses import ImageCompletion, TextCompletion, classify_completion
from .stream_decoder import DecoderState, StreamDecoder, decode_stream

__all__ = [
    "ConversationState",
    "ConversationTurn",
    "DecoderState",
    "EditorContext",
    "ImageCompletion",
    "ImagePayload",
    "ImagePreparer",
    "PhotoEditorClient",
    "RateLimitStatus",
    "SlidingWindowRateLimiter",
    "StreamDecoder",
    "TextCompletion",
    "classify_completion",
    "decode_stream",
]
