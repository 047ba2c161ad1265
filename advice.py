from __future__ import annotations

import json
import logging
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from config import get_settings
from errors import TransientError
from periods import Period
from services import AccountService, GoalService, MetricsService


logger = logging.getLogger(__name__)


class FinancialHealthIn(BaseModel):
    financial_summary: str = Field(..., min_length=1, max_length=4000)


class FinancialHealthOut(BaseModel):
    score: int = Field(..., ge=0, le=100)
    explanation: str
    improvement_tips: list[str] = Field(default_factory=list)


class SpendingInsightIn(BaseModel):
    spending_data: str = Field(..., min_length=1, max_length=4000)
    user_preferences: str = Field(default="", max_length=1000)


class SpendingPreferences(BaseModel):
    user_preferences: str = Field(default="", max_length=1000)


class SpendingInsightOut(BaseModel):
    insight: str
    send_notification: bool = False


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def build_financial_summary(session: Session, owner_id: str, period: Period) -> str:
    """Describe the owner's finances in plain sentences for the advice service."""
    metrics = MetricsService(session, owner_id)
    totals = metrics.summary(period)
    balances = metrics.balances(as_of=period.end)
    accounts = AccountService(session, owner_id).list_all()
    goals = GoalService(session, owner_id).list_all()

    lines = [
        f"Period: {period.describe()}.",
        f"Income received: {_money(totals['credits_cents'])}. "
        f"Spending: {_money(totals['debits_cents'])}. "
        f"Net: {_money(totals['net_cents'])} over {totals['count']} transactions.",
    ]
    if totals["credits_cents"] > 0:
        rate = totals["net_cents"] * 100 // totals["credits_cents"]
        lines.append(f"Savings rate: {rate}% of income.")

    breakdown = metrics.category_breakdown(period)[:5]
    if breakdown:
        top = ", ".join(
            f"{row['category']} {_money(row['amount_cents'])}" for row in breakdown
        )
        lines.append(f"Largest spending categories: {top}.")

    if accounts:
        described = ", ".join(
            f"{account.name} ({account.type.value}) balance "
            f"{_money(balances.get(account.id, 0))}"
            for account in accounts
        )
        lines.append(f"Accounts: {described}.")

    if goals:
        described = ", ".join(
            f"{goal.name} {_money(goal.saved_cents)} of {_money(goal.target_cents)}"
            for goal in goals
        )
        lines.append(f"Savings goals: {described}.")
    else:
        lines.append("No savings goals set.")
    return " ".join(lines)


def build_spending_data(session: Session, owner_id: str, period: Period) -> str:
    breakdown = MetricsService(session, owner_id).category_breakdown(period)
    if not breakdown:
        return f"No spending recorded for {period.describe()}."
    spent = "; ".join(
        f"{row['category']}: {_money(row['amount_cents'])}" for row in breakdown
    )
    return f"Spending for {period.describe()}: {spent}."


class AdviceClient:
    """Calls the remote generative-text flows over JSON/HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url if base_url is not None else settings.advice_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.advice_api_key
        self.timeout = timeout if timeout is not None else settings.advice_timeout_secs

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _post(self, flow: str, payload: dict[str, object]) -> dict[str, object]:
        if not self.enabled:
            raise TransientError("Advice service is not configured")
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        req = Request(
            f"{self.base_url}/{flow}",
            data=json.dumps(payload).encode("utf-8"),
            headers=headers,
            method="POST",
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            if exc.code == 503:
                raise TransientError("Advice service is overloaded") from exc
            raise TransientError(f"Advice service returned HTTP {exc.code}") from exc
        except (URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise TransientError(f"Failed to reach advice flow {flow}") from exc

    def financial_health(self, data: FinancialHealthIn) -> FinancialHealthOut:
        payload = self._post("financial-health", data.model_dump())
        try:
            return FinancialHealthOut.model_validate(payload)
        except PydanticValidationError as exc:
            raise TransientError("Unexpected advice service response") from exc

    def spending_insight(self, data: SpendingInsightIn) -> SpendingInsightOut:
        payload = self._post("spending-insight", data.model_dump())
        try:
            return SpendingInsightOut.model_validate(payload)
        except PydanticValidationError as exc:
            raise TransientError("Unexpected advice service response") from exc

    def financial_health_or_fallback(self, data: FinancialHealthIn) -> FinancialHealthOut:
        try:
            return self.financial_health(data)
        except TransientError as exc:
            logger.warning(f"advice_unavailable: flow=financial-health error={exc}")
            if "overloaded" in str(exc):
                explanation = (
                    "The financial health service is temporarily unavailable or "
                    "overloaded. Please try again in a few moments."
                )
            else:
                explanation = (
                    "An unexpected error occurred while calculating financial "
                    "health. Please try again later."
                )
            return FinancialHealthOut(
                score=0,
                explanation=explanation,
                improvement_tips=["Review spending habits.", "Consider creating a budget."],
            )

    def spending_insight_or_fallback(self, data: SpendingInsightIn) -> SpendingInsightOut:
        try:
            return self.spending_insight(data)
        except TransientError as exc:
            logger.warning(f"advice_unavailable: flow=spending-insight error={exc}")
            return SpendingInsightOut(
                insight="Spending insights are unavailable right now.",
                send_notification=False,
            )

