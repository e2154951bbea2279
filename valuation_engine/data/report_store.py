"""
Report persistence.

Only two writes leave the valuation pipeline: the report row and the status
transition on the appraisal request that asked for it. Both happen inside one
transaction so a caller never observes a report without a READY request or
the reverse.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from ..core.database import Base, get_session_local
from ..schemas import ReportType, RiskFlag, Severity, ValuationResult

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """The report and status update could not be written together."""


class RequestNotFoundError(PersistenceError):
    pass


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    READY = "READY"
    FAILED = "FAILED"


class AppraisalRequest(Base):
    """
    Appraisal request created by the intake flow. This service only
    reads it and moves its status forward.
    """
    __tablename__ = "appraisal_requests"

    id = Column(String, primary_key=True)
    purpose = Column(String, nullable=True)
    requested_type = Column(SQLEnum(ReportType), nullable=False, default=ReportType.AI_REPORT)
    status = Column(SQLEnum(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True)
    report_id = Column(String, ForeignKey("reports.id"), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class Report(Base):
    __tablename__ = "reports"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(SQLEnum(ReportType), nullable=False)
    value_estimate = Column(Integer, nullable=False)
    value_range_min = Column(Integer, nullable=False)
    value_range_max = Column(Integer, nullable=False)
    fast_sale_estimate = Column(Integer, nullable=False)
    confidence_score = Column(Integer, nullable=False)
    risk_score = Column(Integer, nullable=False)
    comps_count = Column(Integer, nullable=False)

    # Structured blobs, stored as the JSON dump of the record types in schemas.py
    comps = Column(JSON, nullable=False)
    risk_flags = Column(JSON, nullable=False)
    ai_analysis = Column(JSON, nullable=False)
    market_trends = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


def risk_score(risk_flags: List[RiskFlag]) -> int:
    """+30 per HIGH flag, +15 per MEDIUM, +5 for anything else, capped at 100."""
    score = 0
    for flag in risk_flags:
        if flag.severity == Severity.HIGH:
            score += 30
        elif flag.severity == Severity.MEDIUM:
            score += 15
        else:
            score += 5
    return min(100, score)


class ReportStore:
    def __init__(self, session_factory: sessionmaker | None = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory or get_session_local()

    def create_report(self, request_id: str, result: ValuationResult,
                      report_type: ReportType) -> Report:
        """
        Insert the report and mark ``request_id`` READY in a single transaction.
        Raises RequestNotFoundError for an unknown request and PersistenceError
        for any database failure; nothing is written in either case.
        """
        session = self.session_factory(expire_on_commit=False)
        try:
            with session.begin():
                request = session.get(AppraisalRequest, request_id, with_for_update=True)
                if request is None:
                    raise RequestNotFoundError(f"appraisal request {request_id!r} not found")

                report = Report(
                    id=str(uuid.uuid4()),
                    type=report_type,
                    value_estimate=result.value_estimate,
                    value_range_min=result.value_range_min,
                    value_range_max=result.value_range_max,
                    fast_sale_estimate=result.fast_sale_estimate,
                    confidence_score=result.confidence_score,
                    risk_score=risk_score(result.risk_flags),
                    comps_count=len(result.comps),
                    comps=[c.model_dump(mode="json") for c in result.comps],
                    risk_flags=[f.model_dump(mode="json") for f in result.risk_flags],
                    ai_analysis=result.ai_analysis.model_dump(mode="json"),
                    market_trends=result.market_trends.model_dump(mode="json"),
                )
                session.add(report)
                session.flush()

                request.report_id = report.id
                request.status = RequestStatus.READY
                request.completed_at = datetime.now(timezone.utc)
                request.error_message = None
            logger.info("Report %s stored for request %s", report.id, request_id)
            return report
        except SQLAlchemyError as exc:
            logger.error("Report write failed for request %s: %s", request_id, exc)
            raise PersistenceError(f"could not store report for request {request_id!r}") from exc
        finally:
            session.close()

    def mark_failed(self, request_id: str, reason: str) -> bool:
        """Move the request to FAILED. Returns False when it does not exist."""
        session = self.session_factory()
        try:
            with session.begin():
                request = session.get(AppraisalRequest, request_id)
                if request is None:
                    return False
                request.status = RequestStatus.FAILED
                request.error_message = reason[:2000]
                request.completed_at = datetime.now(timezone.utc)
            return True
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not mark request {request_id!r} failed") from exc
        finally:
            session.close()

    def mark_in_progress(self, request_id: str) -> None:
        session = self.session_factory()
        try:
            with session.begin():
                request = session.get(AppraisalRequest, request_id)
                if request is None:
                    raise RequestNotFoundError(f"appraisal request {request_id!r} not found")
                request.status = RequestStatus.IN_PROGRESS
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not update request {request_id!r}") from exc
        finally:
            session.close()

    def get_request(self, request_id: str) -> AppraisalRequest | None:
        session = self.session_factory(expire_on_commit=False)
        try:
            return session.get(AppraisalRequest, request_id)
        finally:
            session.close()

    def get_report(self, report_id: str) -> Report | None:
        session = self.session_factory(expire_on_commit=False)
        try:
            return session.get(Report, report_id)
        finally:
            session.close()
