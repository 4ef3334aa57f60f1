"""
Face validation pipeline.

One call per capture event: registered population first, then the observed
population, then creation of a new observed record. Every exit path, including
unexpected failures, writes exactly one audit entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.correlation import get_structured_logger
from ..core.exceptions import EmbeddingLookupError, InvalidEmbeddingError, StatusCatalogError
from ..models.database import ObservedUser, User, utcnow
from ..schemas import ItemWithNameAndId, ObservedDetails, ValidationResponse, ValidationUser
from . import status_catalog as statuses
from .access_decision import (
    DenialState,
    apply_denial_transition,
    evaluate_observed_access,
    registered_has_access,
)
from .audit_log import AuditLogger, LogEntry
from .classifier import MatchClassifier, MatchOutcome, similarity_from_distance
from .embedding_store import EmbeddingStore, embedding_store
from .matcher import Candidate, validate_embedding
from .observed_lifecycle import ObservedUserService, observed_user_service
from .side_channels import (
    NEW_OBSERVED_PROMPT,
    ActionSuggester,
    FaceImageUploader,
    build_existing_observed_prompt,
)
from .status_catalog import StatusCatalog, load_status_catalog, resolve_zone_details

logger = logging.getLogger(__name__)
slog = get_structured_logger(__name__)


@dataclass
class ValidationOutcome:
    status_code: int
    response: ValidationResponse
    # Status catalog the pipeline ran with, for the caller to cache
    catalog: Optional[StatusCatalog] = None


def _placeholder_user(full_name: str, status_id: str, status_name: str, user_id: str = "N/A",
                      user_type: str = "unknown", similarity: float = 0) -> ValidationUser:
    return ValidationUser(
        id=user_id,
        full_name=full_name,
        user_type=user_type,
        hasAccess=False,
        similarity=similarity,
        role_details=None,
        status_details=ItemWithNameAndId(id=status_id, name=status_name),
        zones_accessed_details=[],
    )


class FaceValidationService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        store: Optional[EmbeddingStore] = None,
        classifier: Optional[MatchClassifier] = None,
        observed_service: Optional[ObservedUserService] = None,
        uploader: Optional[FaceImageUploader] = None,
        suggester: Optional[ActionSuggester] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_maker = session_maker
        self.store = store or embedding_store
        self.classifier = classifier or MatchClassifier()
        self.observed_service = observed_service or observed_user_service
        self.uploader = uploader or FaceImageUploader()
        self.suggester = suggester or ActionSuggester()
        self.audit_logger = audit_logger or AuditLogger(session_maker)
        self.clock = clock

    async def validate(self, payload: Any, catalog: Optional[StatusCatalog] = None) -> ValidationOutcome:
        entry = LogEntry()
        try:
            outcome = await self._validate(payload, catalog, entry)
        except Exception as e:
            logger.exception("Unhandled error during face validation")
            entry.error(f"Validation failed due to unhandled internal error: {e}", "unhandled_exception")
            outcome = ValidationOutcome(
                500,
                ValidationResponse(
                    user=_placeholder_user("System Error", "error", "Error"),
                    type="error",
                    message="An internal server error occurred during validation.",
                    error=str(e),
                ),
            )

        await self.audit_logger.write(entry)
        slog.info(
            "face_validation_completed",
            status_code=outcome.status_code,
            response_type=outcome.response.type,
            decision=entry.decision,
            match_status=entry.match_status,
        )
        return outcome

    async def _validate(self, payload: Any, catalog: Optional[StatusCatalog], entry: LogEntry) -> ValidationOutcome:
        if not isinstance(payload, dict):
            payload = {}
        raw_embedding = payload.get("faceEmbedding")
        zone_id = payload.get("zoneId") or None
        image_data = payload.get("imageData") or None
        if zone_id is not None and not isinstance(zone_id, str):
            zone_id = str(zone_id)
        if image_data is not None and not isinstance(image_data, str):
            image_data = None

        entry.vector_attempted = raw_embedding if isinstance(raw_embedding, list) else []
        entry.requested_zone_id = zone_id

        try:
            embedding = validate_embedding(raw_embedding)
        except InvalidEmbeddingError as e:
            entry.error(str(e), "invalid_input")
            return ValidationOutcome(
                400,
                ValidationResponse(
                    user=_placeholder_user("Client Error", "error", "Invalid Input"),
                    type="client_error",
                    message="Missing or invalid faceEmbedding in request body.",
                    error=str(e),
                ),
            )

        async with self.session_maker() as session:
            if catalog is None:
                try:
                    catalog = await load_status_catalog(session)
                except StatusCatalogError as e:
                    logger.error(f"Status catalog unavailable: {e}")
                    entry.error(f"Critical: {e}", "status_id_missing")
                    return ValidationOutcome(
                        500,
                        ValidationResponse(
                            user=_placeholder_user("System Error", "error", "Error"),
                            type="error",
                            message="An internal server error occurred during validation.",
                            error=str(e),
                        ),
                    )

            outcome = await self._match(session, embedding, zone_id, image_data, catalog, entry)

        outcome.catalog = catalog
        return outcome

    async def _match(
        self,
        session: AsyncSession,
        embedding: List[float],
        zone_id: Optional[str],
        image_data: Optional[str],
        catalog: StatusCatalog,
        entry: LogEntry,
    ) -> ValidationOutcome:
        registered_lookup_failed = False
        try:
            registered = await self.store.closest_registered(session, embedding)
        except EmbeddingLookupError as e:
            logger.warning(f"{e}; continuing with observed population")
            registered_lookup_failed = True
            registered = None

        if self.classifier.classify(registered) is MatchOutcome.REGISTERED_MATCH:
            return await self._handle_registered(session, registered, zone_id, entry)

        if registered is not None:
            slog.info(
                "registered_candidate_above_threshold",
                user_id=registered.candidate_id,
                distance=registered.distance,
                threshold=self.classifier.registered_threshold,
            )

        try:
            observed = await self.store.closest_observed(session, embedding)
        except EmbeddingLookupError as e:
            if registered_lookup_failed:
                logger.error(f"{e}; both populations unavailable")
                return self._no_match(entry)
            logger.warning(f"{e}; treating observed population as empty")
            observed = None

        if self.classifier.classify(registered, observed) is MatchOutcome.OBSERVED_UPDATE:
            return await self._handle_observed(
                session, observed, embedding, zone_id, image_data, catalog, entry
            )

        if observed is not None:
            slog.info(
                "observed_candidate_above_threshold",
                observed_user_id=observed.candidate_id,
                distance=observed.distance,
                threshold=self.classifier.observed_threshold,
            )

        return await self._handle_new_observed(session, embedding, zone_id, image_data, catalog, entry)

    async def _handle_registered(
        self,
        session: AsyncSession,
        candidate: Candidate,
        zone_id: Optional[str],
        entry: LogEntry,
    ) -> ValidationOutcome:
        similarity = similarity_from_distance(candidate.distance)
        user = await session.get(User, candidate.candidate_id)

        if user is None:
            reason = (
                f"Registered user ID {candidate.candidate_id} found by embedding, "
                f"but details were null."
            )
            logger.error(reason)
            entry.user_id = candidate.candidate_id
            entry.user_type = "registered"
            entry.confidence_score = similarity
            entry.error(reason, "registered_user_details_null")
            return ValidationOutcome(
                500,
                ValidationResponse(
                    user=_placeholder_user(
                        "Error retrieving details", "error", "Error",
                        user_id=candidate.candidate_id, user_type="registered", similarity=similarity,
                    ),
                    type="registered_user_details_retrieval_error",
                    message="Could not retrieve full details for registered user.",
                    error=reason,
                ),
            )

        status_name = user.status.name if user.status else None
        zone_ids = [zone.id for zone in user.access_zones]
        has_access = registered_has_access(status_name, zone_ids, zone_id)

        denial = apply_denial_transition(
            DenialState(user.consecutive_denied_accesses or 0, bool(user.alert_triggered)),
            granted=has_access,
        )
        user.consecutive_denied_accesses = denial.consecutive_denied_accesses
        user.alert_triggered = denial.alert_triggered
        await session.commit()

        status_details = (
            ItemWithNameAndId(id=user.status.id, name=user.status.name)
            if user.status else ItemWithNameAndId(id="unknown", name="Unknown")
        )

        entry.user_id = user.id
        entry.user_type = "registered"
        entry.confidence_score = similarity
        if has_access:
            reason = f"Registered user matched, access granted for zone: {zone_id}"
        else:
            reason = (
                f"Registered user matched, but access denied for zone: {zone_id} "
                f"(Status: {status_details.name}, Has Zone Access: {str(zone_id in zone_ids).lower()}). "
                f"Consecutive denied attempts: {denial.consecutive_denied_accesses}. "
                f"Alert triggered: {str(denial.alert_triggered).lower()}"
            )
        entry.grant_or_deny(has_access, reason, "registered_match")

        slog.info(
            "registered_user_matched",
            user_id=user.id,
            distance=candidate.distance,
            has_access=has_access,
            consecutive_denied_accesses=denial.consecutive_denied_accesses,
        )

        return ValidationOutcome(
            200,
            ValidationResponse(
                user=ValidationUser(
                    id=user.id,
                    full_name=user.full_name,
                    user_type="registered",
                    hasAccess=has_access,
                    similarity=similarity,
                    role_details=(
                        ItemWithNameAndId(id=user.role.id, name=user.role.name) if user.role else None
                    ),
                    status_details=status_details,
                    zones_accessed_details=[
                        ItemWithNameAndId(id=zone.id, name=zone.name) for zone in user.access_zones
                    ],
                ),
                type="registered_user_matched" if has_access else "registered_user_access_denied",
                message=(
                    "Access Granted for Registered User."
                    if has_access else "Access Denied for Registered User."
                ),
            ),
        )

    async def _handle_observed(
        self,
        session: AsyncSession,
        candidate: Candidate,
        embedding: List[float],
        zone_id: Optional[str],
        image_data: Optional[str],
        catalog: StatusCatalog,
        entry: LogEntry,
    ) -> ValidationOutcome:
        similarity = similarity_from_distance(candidate.distance)
        now = self.clock()

        observed = await session.get(ObservedUser, candidate.candidate_id)
        if observed is None:
            # Deleted between the scan and the fetch
            logger.warning(f"Observed user {candidate.candidate_id} vanished, registering a new one")
            return await self._handle_new_observed(session, embedding, zone_id, image_data, catalog, entry)

        entry.observed_user_id = observed.id
        entry.user_type = "observed"
        entry.confidence_score = similarity

        status_name = catalog.name_for(observed.status_id)
        decision = evaluate_observed_access(status_name, observed.expires_at, now, zone_id)
        denial = apply_denial_transition(
            DenialState(observed.consecutive_denied_accesses or 0, bool(observed.alert_triggered)),
            granted=decision.has_access,
            force_alert=decision.force_alert,
        )
        self.observed_service.apply_match(observed, decision, denial, zone_id, catalog, now)

        if image_data:
            upload = await self.uploader.upload(observed.id, image_data, True)
            if not upload.ok:
                logger.warning(upload.warning)
            elif upload.value:
                observed.face_image_url = upload.value
                try:
                    zones = await resolve_zone_details(session, observed.last_accessed_zones or [])
                except SQLAlchemyError as e:
                    logger.warning(f"Could not resolve zones for AI prompt of observed user {observed.id}: {e}")
                    zones = []
                new_status_name = catalog.name_for(observed.status_id)
                suggestion = await self.suggester.suggest(
                    image_data,
                    build_existing_observed_prompt(
                        observed.id,
                        new_status_name,
                        None if new_status_name == statuses.EXPIRED else observed.expires_at.isoformat(),
                        [zone["name"] for zone in zones],
                    ),
                )
                if not suggestion.ok:
                    logger.warning(suggestion.warning)
                elif suggestion.value:
                    observed.ai_action = suggestion.value

        await session.commit()

        entry.grant_or_deny(
            decision.has_access,
            f"{decision.reason}. Consecutive denied attempts: {denial.consecutive_denied_accesses}. "
            f"Alert triggered: {str(denial.alert_triggered).lower()}",
            decision.response_type,
        )

        slog.info(
            "observed_user_matched",
            observed_user_id=observed.id,
            distance=candidate.distance,
            has_access=decision.has_access,
            response_type=decision.response_type,
            access_count=observed.access_count,
        )

        return ValidationOutcome(
            200,
            await self._observed_response(
                session, observed, catalog, decision.has_access, similarity, candidate.distance,
                decision.response_type, decision.message,
            ),
        )

    async def _handle_new_observed(
        self,
        session: AsyncSession,
        embedding: List[float],
        zone_id: Optional[str],
        image_data: Optional[str],
        catalog: StatusCatalog,
        entry: LogEntry,
    ) -> ValidationOutcome:
        suggestion = await self.suggester.suggest(image_data, NEW_OBSERVED_PROMPT)
        if not suggestion.ok:
            logger.warning(suggestion.warning)

        observed = await self.observed_service.create(
            session, embedding, zone_id, catalog, now=self.clock(), ai_action=suggestion.value
        )

        if image_data:
            upload = await self.uploader.upload(observed.id, image_data, True)
            if not upload.ok:
                logger.warning(upload.warning)
            else:
                observed.face_image_url = upload.value

        await session.commit()

        entry.observed_user_id = observed.id
        entry.user_type = "new_observed"
        entry.confidence_score = 1.0
        entry.grant_or_deny(
            True, f"New observed user registered for zone: {zone_id}", "new_observed_user_registered"
        )

        slog.info("new_observed_user_registered", observed_user_id=observed.id, zone_id=zone_id)

        return ValidationOutcome(
            200,
            await self._observed_response(
                session, observed, catalog, True, 1.0, 0.0,
                "new_observed_user_registered", "New Observed User Registered. Access Granted.",
            ),
        )

    async def _observed_response(
        self,
        session: AsyncSession,
        observed: ObservedUser,
        catalog: StatusCatalog,
        has_access: bool,
        similarity: float,
        distance: float,
        response_type: str,
        message: str,
    ) -> ValidationResponse:
        zones = await resolve_zone_details(session, observed.last_accessed_zones or [])
        return ValidationResponse(
            user=ValidationUser(
                id=observed.id,
                full_name=None,
                user_type="observed",
                hasAccess=has_access,
                similarity=similarity,
                role_details=None,
                status_details=ItemWithNameAndId(**catalog.details(observed.status_id)),
                zones_accessed_details=[ItemWithNameAndId(**zone) for zone in zones],
                observed_details=ObservedDetails(
                    firstSeenAt=observed.first_seen_at,
                    lastSeenAt=observed.last_seen_at,
                    accessCount=observed.access_count,
                    alertTriggered=observed.alert_triggered,
                    expiresAt=observed.expires_at,
                    potentialMatchUserId=observed.potential_match_user_id,
                    similarity=similarity,
                    distance=distance,
                    faceImageUrl=observed.face_image_url,
                    aiAction=observed.ai_action,
                ),
            ),
            type=response_type,
            message=message,
        )

    def _no_match(self, entry: LogEntry) -> ValidationOutcome:
        entry.grant_or_deny(
            False,
            "No registered or observed user matched the face embedding within thresholds.",
            "no_match_found",
        )
        return ValidationOutcome(
            404,
            ValidationResponse(
                user=_placeholder_user("No Match", "no_match", "No Match"),
                type="no_match_found",
                message="No registered or observed user found matching the face.",
            ),
        )
