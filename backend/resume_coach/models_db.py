import uuid
from sqlalchemy import (
    Column,
    String,
    Text,
    ForeignKey,
    DateTime,
    Boolean,
    Integer,
    CheckConstraint,
    func,
    Index,
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.ext.asyncio import AsyncAttrs

# Define the base class for declarative models with AsyncAttrs for proper async support
Base = declarative_base(cls=AsyncAttrs)

# New accounts start with this many credits.
FREE_STARTING_CREDITS = 50


def generate_uuid():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=generate_uuid)
    external_id = Column(String, unique=True, index=True, nullable=True)
    email = Column(String, index=True, nullable=True)
    name = Column(String)
    active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    credits = relationship("UserCredits", back_populates="user", uselist=False, cascade="all, delete-orphan", passive_deletes=True)
    credit_transactions = relationship("CreditTransaction", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    cover_letter_forms = relationship("CoverLetterForm", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)


class UserCredits(Base):
    __tablename__ = "user_credits"
    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    credits = Column(Integer, nullable=False, default=FREE_STARTING_CREDITS)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    user = relationship("User", back_populates="credits")

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_user_credits_non_negative"),
    )


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"
    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Integer, nullable=False)  # negative for usage
    balance_after = Column(Integer, nullable=False)
    transaction_type = Column(String, nullable=False)  # 'purchase', 'usage', 'refund', 'bonus'
    feature = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    reference = Column(String, unique=True, nullable=True)  # e.g. Stripe checkout session id
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="credit_transactions")

    __table_args__ = (
        Index('ix_credit_transactions_user_created', 'user_id', 'created_at'),
    )


class CoverLetterForm(Base):
    __tablename__ = "cover_letter_forms"
    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    phone = Column(String, nullable=False, default="")
    company_name = Column(String, nullable=False, default="")
    job_title = Column(String, nullable=False, default="")
    job_description = Column(Text, nullable=False, default="")
    relevant_experience = Column(Text, nullable=False, default="")
    recipient_name = Column(String, nullable=False, default="")
    recipient_title = Column(String, nullable=False, default="")
    company_address = Column(String, nullable=False, default="")
    tone = Column(String, nullable=False, default="professional")
    cover_letter = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="draft")  # 'draft' or 'completed'
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    user = relationship("User", back_populates="cover_letter_forms")

    __table_args__ = (
        Index('ix_cover_letter_forms_user_updated', 'user_id', 'updated_at'),
    )


class NewsletterSubscriber(Base):
    __tablename__ = "newsletter_subscribers"
    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    status = Column(String, nullable=False, default="subscribed")  # 'subscribed' or 'unsubscribed'
    source = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
