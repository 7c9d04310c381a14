from .events import EventBus
from .config import Config
from .clock import Clock, ManualClock, SystemClock
from .errors import (
    InvalidInput,
    LanguageModelError,
    MalformedResponse,
    ModelUnavailable,
    OddyseusError,
    TransientUnavailable,
)
from .affect import AffectVector, EmotionalLabel, EmotionState, nearest_label
from .appraisal import Appraisal, decode_appraisal
from .emotion_engine import EmotionEngineConfig, EmotionSnapshot, EmotionStateEngine
from .relationship import AffinityTier, RelationshipData, RelationshipModel, partition
from .plugin_base import InferenceMetrics, LanguageModelClient
from .orchestrator import Orchestrator, OrchestratorSettings, Session

__version__ = "0.1.0"
