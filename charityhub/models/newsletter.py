from __future__ import annotations

from sqlalchemy.orm import Mapped, mapped_column

from charityhub.extensions import db

from .mixins import CreatedAtMixin


class NewsletterSignup(db.Model, CreatedAtMixin):
    __tablename__ = "newsletter_signups"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False, index=True)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<NewsletterSignup {self.email}>"
