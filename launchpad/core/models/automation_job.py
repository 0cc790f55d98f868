from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from launchpad.core.models.base import BaseModel, isoformat
from launchpad.core.models.enums import JobStatus, JobType, TriggerType

# Storage-level guard: one non-terminal job per (token, job type)
ACTIVE_JOB_PREDICATE = "status IN ('PENDING', 'RUNNING')"


class AutomationJob(BaseModel):
    """A unit of automation work with persisted, retryable state"""

    token_id = Column(Integer, ForeignKey('token.id'), nullable=False, index=True)
    parent_job_id = Column(Integer, ForeignKey('automation_job.id'), index=True)
    job_type = Column(Enum(JobType), nullable=False, index=True)
    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.PENDING, index=True)
    trigger_type = Column(Enum(TriggerType), nullable=False, default=TriggerType.SCHEDULED)
    retry_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    scheduled_for = Column(DateTime(timezone=True))
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    # Failure details
    error_message = Column(Text)
    error_kind = Column(String(20))

    # Amounts (lamports unless noted)
    amount_lamports = Column(BigInteger)
    claimed_lamports = Column(BigInteger, nullable=False, default=0)
    burned_tokens = Column(BigInteger, nullable=False, default=0)
    lp_tokens_added = Column(BigInteger, nullable=False, default=0)
    dividends_paid = Column(BigInteger, nullable=False, default=0)
    unallocated_lamports = Column(BigInteger, nullable=False, default=0)
    tx_signature = Column(String(128))

    # Relationships
    token = relationship("Token", back_populates="automation_jobs", lazy="selectin")
    children = relationship(
        "AutomationJob",
        back_populates="parent",
        order_by="AutomationJob.id"
    )
    parent = relationship("AutomationJob", back_populates="children", remote_side="AutomationJob.id")

    __table_args__ = (
        Index(
            'uq_automation_job_active_per_type',
            'token_id',
            'job_type',
            unique=True,
            postgresql_where=text(ACTIVE_JOB_PREDICATE),
            sqlite_where=text(ACTIVE_JOB_PREDICATE),
        ),
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'tokenId': self.token_id,
            'parentJobId': self.parent_job_id,
            'jobType': str(self.job_type),
            'status': str(self.status),
            'triggerType': str(self.trigger_type),
            'retryCount': self.retry_count,
            'scheduledFor': isoformat(self.scheduled_for),
            'startedAt': isoformat(self.started_at),
            'completedAt': isoformat(self.completed_at),
            'errorMessage': self.error_message,
            'errorKind': self.error_kind,
            'amountLamports': self.amount_lamports,
            'claimedLamports': self.claimed_lamports,
            'burnedTokens': self.burned_tokens,
            'lpTokensAdded': self.lp_tokens_added,
            'dividendsPaid': self.dividends_paid,
            'unallocatedLamports': self.unallocated_lamports,
            'txSignature': self.tx_signature,
            'createdAt': isoformat(self.created_at),
        }

    def __repr__(self):
        return (
            f"<AutomationJob(id={self.id}, token_id={self.token_id}, "
            f"type={self.job_type}, status={self.status})>"
        )
