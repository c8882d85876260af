from app.models.profile import Profile
from app.models.user_role import UserRole
from app.models.policy_document import PolicyDocument, GenerationStatus
from app.models.source import Source, SourceType, ProcessingStatus, VisibilityScope
from app.models.chat import ChatHistory
