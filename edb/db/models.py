# Importer tous les modules de modèles pour enregistrer les tables dans Base.metadata
from edb.db.session import Base  # noqa: F401
from edb.auth.models import User, RefreshToken  # noqa: F401
from edb.audit.models import AuditLog  # noqa: F401
from edb.cohorts.models import Cohort, CohortMember  # noqa: F401
from edb.coaching.models import CoachingSession  # noqa: F401
from edb.subscriptions.models import SubscriptionPlan, Subscription  # noqa: F401
from edb.payments.models import Payment  # noqa: F401
from edb.notifications.models import Notification  # noqa: F401
