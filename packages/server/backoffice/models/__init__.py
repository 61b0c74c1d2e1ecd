# SQLModel definitions; imported here so metadata is populated for create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .team import Team, TeamMember  # noqa: F401
from .project import Project, ProjectMember  # noqa: F401
