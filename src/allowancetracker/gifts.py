"""Gift links for relatives, parent-approved gifts and thank-you notes."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from uuid import UUID

from sqlmodel import col, select

from .clock import as_utc_naive, now
from .context import ServiceContext
from .exceptions import (
    AuthorizationError,
    ChildNotFoundError,
    DuplicateError,
    GiftLinkNotFoundError,
    GiftNotFoundError,
    InvalidStateError,
    ThankYouNoteNotFoundError,
    ValidationError,
)
from .goals import GoalService, progress_percentage
from .ledger import LedgerService
from .models import (
    GiftLinkStats,
    GiftLinkVisibility,
    GiftOccasion,
    GiftPortal,
    GiftReceipt,
    GiftStatus,
    GoalStatus,
    NotificationType,
    PendingThankYou,
    PortalGoal,
    TransactionCategory,
    TransactionType,
)
from .money import AmountLike, format_currency, from_cents, percent_of, require_positive, to_cents, to_decimal
from .security import Actor, require_child_access, require_family_parent
from .webapp.persistence import ApplicationUser, Child, Gift, GiftLink, SavingsGoal, ThankYouNote

_UNSET = object()


def new_token() -> str:
    return secrets.token_urlsafe(32)


def occasion_label(occasion: GiftOccasion, custom: str | None = None) -> str:
    if occasion == GiftOccasion.OTHER and custom:
        return custom
    return occasion.value.replace("_", " ")


def _optional_cents(value: AmountLike | None) -> Optional[int]:
    if value is None:
        return None
    return to_cents(require_positive(to_decimal(value)))


def _check_limits(min_cents: Optional[int], max_cents: Optional[int]) -> None:
    if min_cents is not None and max_cents is not None and min_cents > max_cents:
        raise ValidationError("Minimum gift amount cannot exceed the maximum")


class GiftService:
    """Shareable gift links, the public gift portal, and parent review of gifts."""

    def __init__(self, context: ServiceContext, ledger: LedgerService, goals: GoalService) -> None:
        self._ctx = context
        self._ledger = ledger
        self._goals = goals

    # ------------------------------------------------------------------
    # Gift links
    # ------------------------------------------------------------------
    def portal_url(self, link: GiftLink) -> str:
        return f"{self._ctx.settings.gift_portal_base_url}/gift/{link.token}"

    def create_link(
        self,
        child_id: UUID,
        name: str,
        actor: Actor,
        *,
        description: str | None = None,
        visibility: GiftLinkVisibility = GiftLinkVisibility.MINIMAL,
        expires_at: datetime | None = None,
        max_uses: int | None = None,
        min_amount: AmountLike | None = None,
        max_amount: AmountLike | None = None,
        default_occasion: GiftOccasion | None = None,
    ) -> GiftLink:
        if not name or not name.strip():
            raise ValidationError("Gift link name is required")
        if max_uses is not None and max_uses < 1:
            raise ValidationError("Max uses must be at least 1")
        expires_at = as_utc_naive(expires_at)
        if expires_at is not None and expires_at <= now():
            raise ValidationError("Gift link expiry must be in the future")
        min_cents = _optional_cents(min_amount)
        max_cents = _optional_cents(max_amount)
        _check_limits(min_cents, max_cents)
        with self._ctx.transaction() as session:
            child = self._ctx.get(Child, child_id, ChildNotFoundError)
            require_family_parent(actor, child.family_id)
            link = GiftLink(
                child_id=child.id,
                family_id=child.family_id,
                created_by_id=actor.user_id,
                token=new_token(),
                name=name.strip(),
                description=description,
                visibility=GiftLinkVisibility(visibility),
                expires_at=expires_at,
                max_uses=max_uses,
                min_cents=min_cents,
                max_cents=max_cents,
                default_occasion=GiftOccasion(default_occasion) if default_occasion is not None else None,
            )
            session.add(link)
            self._ctx.logger.log("gift_link_created", link_id=str(link.id), child_id=str(child.id))
            return link

    def list_links(self, actor: Actor, *, child_id: UUID | None = None) -> Sequence[GiftLink]:
        if actor.family_id is None:
            raise AuthorizationError("Actor does not belong to a family")
        require_family_parent(actor, actor.family_id)
        statement = select(GiftLink).where(GiftLink.family_id == actor.family_id)
        if child_id is not None:
            statement = statement.where(GiftLink.child_id == child_id)
        statement = statement.order_by(col(GiftLink.created_at).desc())
        return tuple(self._ctx.session.exec(statement).all())

    def get_link(self, link_id: UUID, actor: Actor) -> GiftLink:
        link = self._ctx.get(GiftLink, link_id, GiftLinkNotFoundError)
        require_family_parent(actor, link.family_id)
        return link

    def update_link(
        self,
        link_id: UUID,
        actor: Actor,
        *,
        name: str | None = None,
        description: object = _UNSET,
        visibility: GiftLinkVisibility | None = None,
        is_active: bool | None = None,
        expires_at: object = _UNSET,
        max_uses: object = _UNSET,
        min_amount: object = _UNSET,
        max_amount: object = _UNSET,
        default_occasion: object = _UNSET,
    ) -> GiftLink:
        with self._ctx.transaction() as session:
            link = self.get_link(link_id, actor)
            if name is not None:
                if not name.strip():
                    raise ValidationError("Gift link name is required")
                link.name = name.strip()
            if description is not _UNSET:
                link.description = description  # type: ignore[assignment]
            if visibility is not None:
                link.visibility = GiftLinkVisibility(visibility)
            if is_active is not None:
                link.is_active = is_active
            if expires_at is not _UNSET:
                link.expires_at = as_utc_naive(expires_at)  # type: ignore[arg-type]
            if max_uses is not _UNSET:
                if max_uses is not None and max_uses < 1:  # type: ignore[operator]
                    raise ValidationError("Max uses must be at least 1")
                link.max_uses = max_uses  # type: ignore[assignment]
            if min_amount is not _UNSET:
                link.min_cents = _optional_cents(min_amount)  # type: ignore[arg-type]
            if max_amount is not _UNSET:
                link.max_cents = _optional_cents(max_amount)  # type: ignore[arg-type]
            _check_limits(link.min_cents, link.max_cents)
            if default_occasion is not _UNSET:
                link.default_occasion = GiftOccasion(default_occasion) if default_occasion is not None else None
            link.updated_at = now()
            session.add(link)
            self._ctx.logger.log("gift_link_updated", link_id=str(link.id), active=link.is_active)
            return link

    def deactivate_link(self, link_id: UUID, actor: Actor) -> GiftLink:
        return self.update_link(link_id, actor, is_active=False)

    def regenerate_token(self, link_id: UUID, actor: Actor) -> GiftLink:
        """Replace the link's token so the old portal URL stops working."""

        with self._ctx.transaction() as session:
            link = self.get_link(link_id, actor)
            link.token = new_token()
            link.updated_at = now()
            session.add(link)
            self._ctx.logger.log("gift_link_token_regenerated", link_id=str(link.id))
            return link

    def link_stats(self, link_id: UUID, actor: Actor) -> GiftLinkStats:
        link = self.get_link(link_id, actor)
        gifts = self._ctx.session.exec(select(Gift).where(Gift.gift_link_id == link.id)).all()
        by_status = {status: [gift for gift in gifts if gift.status == status] for status in GiftStatus}
        approved = by_status[GiftStatus.APPROVED]
        return GiftLinkStats(
            link_id=link.id,
            total_gifts=len(gifts),
            pending_gifts=len(by_status[GiftStatus.PENDING]),
            approved_gifts=len(approved),
            rejected_gifts=len(by_status[GiftStatus.REJECTED]),
            total_approved_amount=from_cents(sum(gift.amount_cents for gift in approved)),
            last_gift_at=max((gift.created_at for gift in gifts), default=None),
        )

    def validate_token(self, token: str) -> GiftLink:
        """Return the usable link behind ``token``.

        Unknown tokens raise :class:`GiftLinkNotFoundError`; links that are
        inactive, expired or used up raise :class:`InvalidStateError`.
        """

        link = self._ctx.session.exec(select(GiftLink).where(GiftLink.token == token)).first()
        if link is None:
            raise GiftLinkNotFoundError("Gift link not found")
        if not link.is_active:
            raise InvalidStateError("This gift link is no longer active")
        if link.expires_at is not None and link.expires_at < now():
            raise InvalidStateError("This gift link has expired")
        if link.max_uses is not None and link.use_count >= link.max_uses:
            raise InvalidStateError("This gift link has reached its usage limit")
        return link

    # ------------------------------------------------------------------
    # Public portal
    # ------------------------------------------------------------------
    def portal(self, token: str) -> GiftPortal:
        link = self.validate_token(token)
        child = self._ctx.get(Child, link.child_id, ChildNotFoundError)
        goals = None
        if link.visibility in (GiftLinkVisibility.WITH_GOALS, GiftLinkVisibility.FULL):
            statement = (
                select(SavingsGoal)
                .where(SavingsGoal.child_id == child.id, SavingsGoal.status == GoalStatus.ACTIVE)
                .order_by(col(SavingsGoal.priority), col(SavingsGoal.created_at))
            )
            goals = [
                PortalGoal(
                    goal_id=goal.id,
                    name=goal.name,
                    target_amount=from_cents(goal.target_cents),
                    current_amount=from_cents(goal.current_cents),
                    progress_percentage=progress_percentage(goal),
                    image_url=goal.image_url,
                )
                for goal in self._ctx.session.exec(statement).all()
            ]
        return GiftPortal(
            child_first_name=self._first_name(child),
            avatar=child.equipped_avatar,
            min_amount=from_cents(link.min_cents) if link.min_cents is not None else None,
            max_amount=from_cents(link.max_cents) if link.max_cents is not None else None,
            default_occasion=link.default_occasion,
            visibility=link.visibility,
            goals=goals,
        )

    def submit(
        self,
        token: str,
        giver_name: str,
        amount: AmountLike,
        *,
        occasion: GiftOccasion | None = None,
        giver_email: str | None = None,
        giver_relationship: str | None = None,
        custom_occasion: str | None = None,
        message: str | None = None,
    ) -> GiftReceipt:
        """Record a pending gift from an outside giver and tell the parents."""

        if not giver_name or not giver_name.strip():
            raise ValidationError("Giver name is required")
        value = require_positive(to_decimal(amount))
        cents = to_cents(value)
        with self._ctx.transaction() as session:
            link = self.validate_token(token)
            if link.min_cents is not None and cents < link.min_cents:
                raise ValidationError(f"Gift amount must be at least {format_currency(from_cents(link.min_cents))}")
            if link.max_cents is not None and cents > link.max_cents:
                raise ValidationError(f"Gift amount cannot exceed {format_currency(from_cents(link.max_cents))}")
            child = self._ctx.get(Child, link.child_id, ChildNotFoundError)
            first_name = self._first_name(child)
            gift = Gift(
                gift_link_id=link.id,
                child_id=child.id,
                family_id=link.family_id,
                giver_name=giver_name.strip(),
                giver_email=giver_email,
                giver_relationship=giver_relationship,
                amount_cents=cents,
                occasion=GiftOccasion(occasion or link.default_occasion or GiftOccasion.JUST_BECAUSE),
                custom_occasion=custom_occasion,
                message=message,
            )
            session.add(gift)
            link.use_count += 1
            link.updated_at = now()
            session.add(link)
            session.flush()
            self._ctx.notifications.send_to_parents(
                link.family_id,
                NotificationType.GIFT_RECEIVED,
                "New gift received!",
                f"{gift.giver_name} sent a gift of {format_currency(value)} to {first_name}. Awaiting your approval.",
                data={"gift_id": gift.id, "child_id": child.id, "amount": str(value)},
                related=("gift", gift.id),
                exclude_user_id=child.user_id,
            )
            self._ctx.logger.log("gift_submitted", gift_id=str(gift.id), link_id=str(link.id), amount=str(value))
            return GiftReceipt(
                gift_id=gift.id,
                child_first_name=first_name,
                amount=value,
                message=(
                    f"Thank you for your gift to {first_name}! "
                    "The parents will be notified and the gift will be added once approved."
                ),
            )

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------
    def pending_gifts(self, actor: Actor) -> Sequence[Gift]:
        if actor.family_id is None:
            raise AuthorizationError("Actor does not belong to a family")
        require_family_parent(actor, actor.family_id)
        statement = (
            select(Gift)
            .where(Gift.family_id == actor.family_id, Gift.status == GiftStatus.PENDING)
            .order_by(col(Gift.created_at).desc())
        )
        return tuple(self._ctx.session.exec(statement).all())

    def child_gifts(self, child_id: UUID, actor: Actor) -> Sequence[Gift]:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        statement = select(Gift).where(Gift.child_id == child_id).order_by(col(Gift.created_at).desc())
        return tuple(self._ctx.session.exec(statement).all())

    def get_gift(self, gift_id: UUID, actor: Actor) -> Gift:
        gift = self._ctx.get(Gift, gift_id, GiftNotFoundError)
        require_child_access(actor, self._ctx.get(Child, gift.child_id, ChildNotFoundError))
        return gift

    def approve(
        self,
        gift_id: UUID,
        actor: Actor,
        *,
        allocate_to_goal_id: UUID | None = None,
        savings_percentage: int | None = None,
    ) -> Gift:
        """Credit a pending gift, optionally saving a share of it into one of the child's goals."""

        if savings_percentage is not None and allocate_to_goal_id is None:
            raise ValidationError("A savings percentage needs a goal to save into")
        if allocate_to_goal_id is not None:
            savings_percentage = 100 if savings_percentage is None else savings_percentage
            if not 1 <= savings_percentage <= 100:
                raise ValidationError("Savings percentage must be between 1 and 100")
        with self._ctx.transaction() as session:
            gift = self._ctx.get(Gift, gift_id, GiftNotFoundError)
            require_family_parent(actor, gift.family_id)
            child = self._ctx.lock_child(gift.child_id, ChildNotFoundError)
            if gift.status != GiftStatus.PENDING:
                raise InvalidStateError("Gift has already been processed")
            value = from_cents(gift.amount_cents)
            summary = f"Gift from {gift.giver_name}"
            if gift.occasion != GiftOccasion.JUST_BECAUSE:
                summary = f"{summary} ({occasion_label(gift.occasion, gift.custom_occasion)})"
            transaction = self._ledger.post(
                child,
                value,
                TransactionType.CREDIT,
                TransactionCategory.GIFT,
                summary,
                notes=gift.message,
                created_by_id=actor.user_id,
            )
            if allocate_to_goal_id is not None:
                saved_cents = to_cents(percent_of(value, savings_percentage or 0))
                if saved_cents > 0:
                    self._goals.allocate_gift(
                        allocate_to_goal_id,
                        child,
                        saved_cents,
                        giver_name=gift.giver_name,
                        created_by_id=actor.user_id,
                    )
                gift.allocate_to_goal_id = allocate_to_goal_id
                gift.savings_percentage = savings_percentage
            gift.status = GiftStatus.APPROVED
            gift.processed_by_id = actor.user_id
            gift.processed_at = now()
            gift.transaction_id = transaction.id
            session.add(gift)
            self._ctx.notifications.send(
                child.user_id,
                NotificationType.GIFT_APPROVED,
                "You received a gift!",
                f"{gift.giver_name} sent you {format_currency(value)}!",
                data={"gift_id": gift.id, "amount": str(value)},
                related=("gift", gift.id),
            )
            self._ctx.logger.log(
                "gift_approved",
                gift_id=str(gift.id),
                child_id=str(child.id),
                amount=str(value),
                goal_id=str(allocate_to_goal_id) if allocate_to_goal_id else None,
            )
            return gift

    def reject(self, gift_id: UUID, actor: Actor, *, reason: str | None = None) -> Gift:
        with self._ctx.transaction() as session:
            gift = self._ctx.get(Gift, gift_id, GiftNotFoundError)
            require_family_parent(actor, gift.family_id)
            if gift.status != GiftStatus.PENDING:
                raise InvalidStateError("Gift has already been processed")
            gift.status = GiftStatus.REJECTED
            gift.rejection_reason = reason
            gift.processed_by_id = actor.user_id
            gift.processed_at = now()
            session.add(gift)
            self._ctx.logger.log("gift_rejected", gift_id=str(gift.id))
            return gift

    def expire_old_pending(self, days: int | None = None) -> int:
        """Expire gifts left pending for longer than ``days`` and return how many changed."""

        age = self._ctx.settings.gift_expiry_days if days is None else days
        moment = now()
        cutoff = moment - timedelta(days=age)
        with self._ctx.transaction() as session:
            stale = session.exec(
                select(Gift).where(Gift.status == GiftStatus.PENDING, col(Gift.created_at) < cutoff)
            ).all()
            for gift in stale:
                gift.status = GiftStatus.EXPIRED
                gift.processed_at = moment
                session.add(gift)
            if stale:
                self._ctx.logger.log("gifts_expired", count=len(stale))
            return len(stale)

    def _first_name(self, child: Child) -> str:
        user = self._ctx.session.get(ApplicationUser, child.user_id)
        return user.first_name if user is not None else ""


class ThankYouNoteService:
    """Notes a child writes back to the people who gave them gifts."""

    def __init__(self, context: ServiceContext) -> None:
        self._ctx = context

    def pending(self, child_id: UUID, actor: Actor) -> List[PendingThankYou]:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        noted = select(ThankYouNote.gift_id).where(ThankYouNote.child_id == child_id)
        statement = (
            select(Gift)
            .where(
                Gift.child_id == child_id,
                Gift.status == GiftStatus.APPROVED,
                col(Gift.id).not_in(noted),
            )
            .order_by(col(Gift.processed_at).desc())
        )
        moment = now()
        pending = []
        for gift in self._ctx.session.exec(statement).all():
            received_at = gift.processed_at or gift.created_at
            pending.append(
                PendingThankYou(
                    gift_id=gift.id,
                    giver_name=gift.giver_name,
                    giver_relationship=gift.giver_relationship,
                    amount=from_cents(gift.amount_cents),
                    occasion=gift.occasion,
                    custom_occasion=gift.custom_occasion,
                    received_at=received_at,
                    days_since_received=(moment - received_at).days,
                )
            )
        return pending

    def get(self, gift_id: UUID, actor: Actor) -> ThankYouNote:
        gift = self._ctx.get(Gift, gift_id, GiftNotFoundError)
        require_child_access(actor, self._ctx.get(Child, gift.child_id, ChildNotFoundError))
        note = self._find(gift_id)
        if note is None:
            raise ThankYouNoteNotFoundError(f"Gift {gift_id} has no thank-you note")
        return note

    def list_for_child(self, child_id: UUID, actor: Actor) -> Sequence[ThankYouNote]:
        child = self._ctx.get(Child, child_id, ChildNotFoundError)
        require_child_access(actor, child)
        statement = (
            select(ThankYouNote)
            .where(ThankYouNote.child_id == child_id)
            .order_by(col(ThankYouNote.created_at).desc())
        )
        return tuple(self._ctx.session.exec(statement).all())

    def create(self, gift_id: UUID, message: str, actor: Actor, *, image_url: str | None = None) -> ThankYouNote:
        if not message or not message.strip():
            raise ValidationError("Thank-you message is required")
        with self._ctx.transaction() as session:
            gift = self._recipient_gift(gift_id, actor)
            if gift.status != GiftStatus.APPROVED:
                raise InvalidStateError("Only approved gifts can be thanked")
            if self._find(gift_id) is not None:
                raise DuplicateError("A thank-you note already exists for this gift")
            note = ThankYouNote(gift_id=gift.id, child_id=gift.child_id, message=message.strip(), image_url=image_url)
            session.add(note)
            self._ctx.logger.log("thank_you_note_created", gift_id=str(gift.id), note_id=str(note.id))
            return note

    def update(
        self,
        gift_id: UUID,
        actor: Actor,
        *,
        message: str | None = None,
        image_url: object = _UNSET,
    ) -> ThankYouNote:
        with self._ctx.transaction() as session:
            note = self._recipient_note(gift_id, actor)
            if note.is_sent:
                raise InvalidStateError("A sent thank-you note cannot be changed")
            if message is not None:
                if not message.strip():
                    raise ValidationError("Thank-you message is required")
                note.message = message.strip()
            if image_url is not _UNSET:
                note.image_url = image_url  # type: ignore[assignment]
            note.updated_at = now()
            session.add(note)
            return note

    def send(self, gift_id: UUID, actor: Actor) -> ThankYouNote:
        with self._ctx.transaction() as session:
            note = self._recipient_note(gift_id, actor)
            if note.is_sent:
                raise InvalidStateError("This thank-you note has already been sent")
            gift = self._ctx.get(Gift, gift_id, GiftNotFoundError)
            if not gift.giver_email:
                raise ValidationError("Cannot send a thank-you note: the giver left no email address")
            note.is_sent = True
            note.sent_at = now()
            note.updated_at = note.sent_at
            session.add(note)
            self._ctx.logger.log("thank_you_note_sent", gift_id=str(gift_id), recipient=gift.giver_email)
            return note

    def _find(self, gift_id: UUID) -> Optional[ThankYouNote]:
        return self._ctx.session.exec(select(ThankYouNote).where(ThankYouNote.gift_id == gift_id)).first()

    def _recipient_gift(self, gift_id: UUID, actor: Actor) -> Gift:
        gift = self._ctx.get(Gift, gift_id, GiftNotFoundError)
        if not actor.is_child or actor.child_id != gift.child_id:
            raise AuthorizationError("Only the gift's recipient can write its thank-you note")
        return gift

    def _recipient_note(self, gift_id: UUID, actor: Actor) -> ThankYouNote:
        self._recipient_gift(gift_id, actor)
        note = self._find(gift_id)
        if note is None:
            raise ThankYouNoteNotFoundError(f"Gift {gift_id} has no thank-you note")
        return note


__all__ = ["GiftService", "ThankYouNoteService", "new_token", "occasion_label"]
