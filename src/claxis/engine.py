"""Operation dispatch: the caller-facing boundary.

Callers (the HTTP API, the CLI, workflow integrations) name an
operation, a salon and loosely-typed parameters. The engine validates
the parameters into records, runs the operation and returns an
OperationResult naming the output channel. Every exception is turned
into an error payload on the error channel here; nothing raises past
execute().
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from claxis.audit import (
    DecisionAuditLogger,
    DecisionEvent,
    DecisionEventType,
    SQLiteAnalyticsSink,
    WebhookAnalyticsSink,
)
from claxis.channels import ChannelDispatcher, OutputChannel, channel_for_routing, channel_for_timing
from claxis.config import EngineConfig, SalonConfigProvider, YamlSalonConfigProvider
from claxis.errors import ErrorPayload, MisuseError, NotFoundError, ValidationError
from claxis.models import (
    OptimizationMode,
    SalonSettings,
    parse_budget_constraints,
    parse_conversation_context,
    parse_timing_options,
)
from claxis.routing.analytics import analyze_model_performance, optimize_budget_allocation
from claxis.routing.router import ModelRouter
from claxis.routing.settings import update_ai_settings
from claxis.timing.optimizer import ResponseTimingOptimizer
from claxis.timing.savings import calculate_savings_potential, get_optimization_stats
from claxis.timing.settings import update_optimization_settings
from claxis.timing.window import analyze_message_cost
from claxis.usage import SQLiteUsageStore, UsageStore, get_usage_stats

logger = logging.getLogger(__name__)

TIMING_EVENTS = [DecisionEventType.RESPONSE_IMMEDIATE, DecisionEventType.RESPONSE_OPTIMIZED]


@dataclass
class OperationResult:
    """What execute() hands back: a payload and where it goes."""
    operation: str
    channel: OutputChannel
    payload: dict[str, Any]
    execution_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def ok(self) -> bool:
        return self.channel != OutputChannel.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "channel": self.channel.value,
            "execution_id": self.execution_id,
            "result": self.payload,
        }


Handler = Callable[[SalonSettings, dict[str, Any], str], Awaitable[tuple[dict[str, Any], OutputChannel]]]


def _period(params: dict[str, Any], key: str = "calculation_period", default: int = 30) -> int:
    value = params.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 365:
        raise ValidationError(
            f"Invalid {key}: {value!r}",
            [f"{key}: must be an integer number of days between 1 and 365"],
        )
    return value


def _mode(params: dict[str, Any], default: str = OptimizationMode.BALANCED.value) -> str:
    value = params.get("optimization_mode") or default
    try:
        return OptimizationMode(value).value
    except ValueError:
        allowed = ", ".join(m.value for m in OptimizationMode)
        raise ValidationError(
            f"Invalid optimization_mode: {value!r}",
            [f"optimization_mode: must be one of {allowed}"],
        ) from None


class DecisionEngine:
    """Runs named operations for a salon.

    Usage:
        engine = DecisionEngine.from_config(load_engine_config())
        result = await engine.execute("route_ai_request", "salon-1", {
            "message_content": "Can I book a cut tomorrow?",
            "request_type": "booking_request",
            "conversation_context": {...},
        })
        result.channel  # OutputChannel.FAST
        await engine.close()
    """

    def __init__(
        self,
        config_provider: SalonConfigProvider,
        usage_store: UsageStore | None = None,
        decision_log: SQLiteAnalyticsSink | None = None,
        audit: DecisionAuditLogger | None = None,
        dispatcher: ChannelDispatcher | None = None,
        history_days: int = 30,
        default_mode: OptimizationMode = OptimizationMode.BALANCED,
    ):
        self.config_provider = config_provider
        self.default_mode = OptimizationMode(default_mode).value
        self.usage_store = usage_store
        self.decision_log = decision_log
        self.audit = audit or DecisionAuditLogger(
            sinks=[decision_log] if decision_log else [],
            usage_store=usage_store,
        )
        self.dispatcher = dispatcher
        self.router = ModelRouter(usage_store, self.audit, history_days)
        self.timing = ResponseTimingOptimizer(usage_store, self.audit)

        self._operations: dict[str, Handler] = {
            "route_ai_request": self._route_ai_request,
            "optimize_response_timing": self._optimize_response_timing,
            "analyze_message_cost": self._analyze_message_cost,
            "calculate_savings_potential": self._calculate_savings_potential,
            "get_optimization_stats": self._get_optimization_stats,
            "update_optimization_settings": self._update_optimization_settings,
            "get_ai_usage_stats": self._get_ai_usage_stats,
            "analyze_model_performance": self._analyze_model_performance,
            "optimize_ai_budget": self._optimize_ai_budget,
            "update_ai_settings": self._update_ai_settings,
            "record_inbound_message": self._record_inbound_message,
        }

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        config_provider: SalonConfigProvider | None = None,
    ) -> "DecisionEngine":
        """Wire the SQLite stores, the optional webhook and salons.yaml."""
        usage_store = SQLiteUsageStore(config.resolved_db_path())
        decision_log = SQLiteAnalyticsSink(config.resolved_decisions_db_path())
        sinks = [decision_log]
        if config.analytics_webhook_url:
            sinks.append(WebhookAnalyticsSink(config.analytics_webhook_url))
        return cls(
            config_provider=config_provider or YamlSalonConfigProvider(),
            usage_store=usage_store,
            decision_log=decision_log,
            audit=DecisionAuditLogger(sinks=sinks, usage_store=usage_store),
            history_days=config.history_days,
            default_mode=config.default_optimization_mode,
        )

    @property
    def operations(self) -> list[str]:
        return list(self._operations)

    async def execute(
        self,
        operation: str,
        salon_id: str,
        params: dict[str, Any] | None = None,
    ) -> OperationResult:
        """Run one operation. Never raises."""
        execution_id = str(uuid.uuid4())
        params = params or {}
        try:
            handler = self._operations.get(operation)
            if handler is None:
                raise MisuseError(
                    f"Unknown operation: {operation}",
                    {"operation": operation, "supported_operations": self.operations},
                )
            settings = await self.config_provider.get(salon_id)
            if settings is None:
                raise NotFoundError(f"Salon not found: {salon_id}", {"salon_id": salon_id})

            payload, channel = await handler(settings, params, execution_id)
        except Exception as e:
            if isinstance(e, (ValidationError, NotFoundError, MisuseError)):
                logger.info(f"{operation} for salon {salon_id} rejected: {e}")
            else:
                logger.exception(f"{operation} for salon {salon_id} failed")
            error = ErrorPayload.from_exception(e, execution_id, {"operation": operation})
            return OperationResult(operation, OutputChannel.ERROR, error.to_dict(), execution_id)

        result = OperationResult(operation, channel, payload, execution_id)
        await self._dispatch(result)
        return result

    async def _dispatch(self, result: OperationResult) -> None:
        if self.dispatcher is None or not self.dispatcher.has_handler(result.channel):
            return
        try:
            await self.dispatcher.dispatch(result.channel, result.payload)
        except Exception as e:
            logger.warning(f"Dispatch to {result.channel.value} failed for {result.execution_id}: {e}")

    async def close(self) -> None:
        """Flush pending audit writes and close sinks."""
        await self.audit.close()

    # ── helpers ──────────────────────────────────────────────

    @staticmethod
    def _context(settings: SalonSettings, params: dict[str, Any]):
        context = parse_conversation_context(params.get("conversation_context"))
        if context.salon_id != settings.salon_id:
            raise ValidationError(
                "Conversation belongs to a different salon",
                ["conversation_context.salon_id: does not match the requested salon"],
            )
        return context

    def _settings_event(self, settings: SalonSettings, section: str, update, execution_id: str) -> None:
        self.audit.emit(DecisionEvent(
            event_type=DecisionEventType.SETTINGS_UPDATED,
            salon_id=settings.salon_id,
            execution_id=execution_id,
            data={"section": section, "changes_applied": update.changes_applied},
        ))

    def _require_usage_store(self) -> UsageStore:
        if self.usage_store is None:
            raise MisuseError("No usage store is configured for this engine")
        return self.usage_store

    async def _timing_events(self, settings: SalonSettings, period: int) -> list[dict[str, Any]]:
        if self.decision_log is None:
            raise MisuseError("No decision log is configured for this engine")
        since = datetime.now(timezone.utc).timestamp() - period * 86400
        return await self.decision_log.query(settings.salon_id, TIMING_EVENTS, since=since, limit=100_000)

    # ── model router operations ──────────────────────────────

    async def _route_ai_request(self, settings, params, execution_id):
        context = self._context(settings, params)
        budget = parse_budget_constraints(params.get("budget_constraints"))
        decision = await self.router.route(
            message=str(params.get("message_content", "")),
            request_type=params.get("request_type", "general_inquiry"),
            priority=str(params.get("priority", "normal")),
            context=context,
            budget=budget,
            optimization_mode=_mode(params, self.default_mode),
            settings=settings,
            execution_id=execution_id,
        )
        return decision.to_dict(), channel_for_routing(decision)

    async def _get_ai_usage_stats(self, settings, params, execution_id):
        stats = await get_usage_stats(
            self._require_usage_store(), settings.salon_id, _period(params),
            settings.ai_settings.cost_budget_monthly_euros,
        )
        return stats, OutputChannel.DEFAULT

    async def _analyze_model_performance(self, settings, params, execution_id):
        report = await analyze_model_performance(
            self._require_usage_store(), settings.salon_id, _period(params))
        return report, OutputChannel.DEFAULT

    async def _optimize_ai_budget(self, settings, params, execution_id):
        report = await optimize_budget_allocation(
            self._require_usage_store(), settings.salon_id, _mode(params, self.default_mode))
        return report, OutputChannel.DEFAULT

    async def _update_ai_settings(self, settings, params, execution_id):
        update = await update_ai_settings(self.config_provider, settings, params.get("new_settings"))
        self._settings_event(settings, "ai_settings", update, execution_id)
        return update.to_dict(), OutputChannel.DEFAULT

    # ── timing operations ────────────────────────────────────

    async def _optimize_response_timing(self, settings, params, execution_id):
        context = self._context(settings, params)
        options = parse_timing_options(params)
        decision = await self.timing.optimize(
            context=context,
            message=str(params.get("message_content", "")),
            customer_urgency=params.get("customer_urgency", "medium"),
            booking_probability=options.booking_probability,
            override_safety=options.override_safety_checks,
            settings=settings.service_window_settings,
            execution_id=execution_id,
        )
        return decision.to_dict(), channel_for_timing(decision)

    async def _analyze_message_cost(self, settings, params, execution_id):
        context = self._context(settings, params)
        analysis = await analyze_message_cost(
            self.usage_store, context, settings.service_window_settings)
        return analysis, OutputChannel.DEFAULT

    async def _calculate_savings_potential(self, settings, params, execution_id):
        period = _period(params)
        events = await self._timing_events(settings, period)
        report = calculate_savings_potential(
            events, period, settings.service_window_settings.template_cost_euros)
        return report, OutputChannel.DEFAULT

    async def _get_optimization_stats(self, settings, params, execution_id):
        period = _period(params)
        events = await self._timing_events(settings, period)
        return get_optimization_stats(events, period), OutputChannel.DEFAULT

    async def _update_optimization_settings(self, settings, params, execution_id):
        update = await update_optimization_settings(
            self.config_provider, settings, params.get("new_settings"))
        self._settings_event(settings, "service_window_settings", update, execution_id)
        return update.to_dict(), OutputChannel.DEFAULT

    # ── ingestion ────────────────────────────────────────────

    async def _record_inbound_message(self, settings, params, execution_id):
        conversation_id = params.get("conversation_id")
        if not conversation_id or not isinstance(conversation_id, str):
            raise ValidationError(
                "Missing conversation_id", ["conversation_id: required string"])
        received_at = params.get("received_at")
        if received_at is not None:
            try:
                received_at = datetime.fromisoformat(str(received_at))
            except ValueError:
                raise ValidationError(
                    f"Invalid received_at: {received_at!r}",
                    ["received_at: must be an ISO 8601 timestamp"],
                ) from None
        await self._require_usage_store().record_inbound_message(
            conversation_id, params.get("customer_id"), received_at)
        return {"recorded": True, "conversation_id": conversation_id}, OutputChannel.DEFAULT
