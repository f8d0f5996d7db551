# Import all the models, so that Base has them before being
# imported by Alembic or create_all()
from userapi.db.base_class import Base
from userapi.models.user import User

__all__ = ["Base", "User"]  # noqa: F401
