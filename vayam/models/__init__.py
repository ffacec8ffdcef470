from .user import User, ROLE_ADMIN, ROLE_COMPANY_ADMIN, ROLE_USER
from .organization import Organization, AccessLink
from .company_user import CompanyUser
from .question import Question, QuestionEmailTemplate
from .question_access import QuestionAccess
from .contribution import Solution, Pro, Con, Participant
from .vote import Vote
from .feedback import Feedback, SmeSubmission
from .email_log import EmailLog
from .email_batch import EmailBatch
from .audit_log import AuditLog

__all__ = [
    "User", "Organization", "AccessLink", "CompanyUser",
    "Question", "QuestionEmailTemplate", "QuestionAccess",
    "Solution", "Pro", "Con", "Participant", "Vote",
    "Feedback", "SmeSubmission", "EmailLog", "EmailBatch", "AuditLog",
    "ROLE_ADMIN", "ROLE_COMPANY_ADMIN", "ROLE_USER",
]
