"""
Trust Engine - Action Executors.

============================================================
PURPOSE
============================================================
Executes side-effecting actions (account suspension, system
isolation, notifications) through an injected ActionExecutor
and reports one outcome per action.

============================================================
FAN-OUT RULES
============================================================
- Actions run concurrently, bounded by a semaphore
- Each call is wrapped in asyncio.wait_for
- A failing or slow action never aborts its siblings
- No rollback: completed actions stay completed
- Outcomes come back in the order the actions were given

============================================================
ADAPTERS
============================================================
LoggingActionExecutor  - logs and acknowledges (dry run)
WebhookActionExecutor  - POSTs to an ops endpoint via httpx

============================================================
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from core.clock import ClockProtocol, get_clock
from core.exceptions import ActionExecutionError, ActionTimeoutError

from .config import ExecutionConfig
from .types import Action, ActionOutcome, ActionReceipt, ActionStatus


logger = logging.getLogger(__name__)


# ============================================================
# EXECUTOR PROTOCOL
# ============================================================


class ActionExecutor(Protocol):
    """
    Protocol for action execution implementations.

    Implementations must be idempotent: executing the same
    action with the same context twice has the effect of once.
    """

    async def execute(self, action_name: str, context: Dict[str, Any]) -> ActionReceipt:
        """
        Execute one action.

        Args:
            action_name: Action kind (e.g. isolate_affected_systems)
            context: JSON-serializable context (target, decision ids)

        Returns:
            ActionReceipt

        Raises:
            ActionExecutionError: the action could not be executed
        """
        ...


# ============================================================
# LOGGING EXECUTOR
# ============================================================


class LoggingActionExecutor:
    """
    Log actions instead of executing them.

    Keeps the executed actions for inspection.
    """

    def __init__(self, clock: Optional[ClockProtocol] = None):
        self._clock = clock or get_clock()
        self.executed: List[Tuple[str, Dict[str, Any]]] = []

    async def execute(self, action_name: str, context: Dict[str, Any]) -> ActionReceipt:
        logger.info(f"[DRY RUN] action={action_name} target={context.get('target')}")
        self.executed.append((action_name, dict(context)))
        return ActionReceipt(status=ActionStatus.SUCCESS.value, timestamp_utc=self._clock.now())


# ============================================================
# WEBHOOK EXECUTOR
# ============================================================


def idempotency_key(action_name: str, context: Dict[str, Any]) -> str:
    """Stable key for one (action, context) pair."""
    explicit = context.get("idempotency_key")
    if explicit:
        return f"{action_name}:{explicit}"
    digest = hashlib.sha256(
        json.dumps({"action": action_name, "context": context}, sort_keys=True, default=str).encode()
    ).hexdigest()
    return digest[:32]


class WebhookActionExecutor:
    """
    Execute actions by POSTing them to an operations endpoint.

    ============================================================
    REQUEST
    ============================================================
    POST <url>
    Idempotency-Key: <key>
    {"action": "...", "context": {...}}

    Any 2xx response acknowledges the action.

    ============================================================
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Initialize webhook executor.

        Args:
            url: Endpoint receiving actions
            timeout_seconds: HTTP timeout per request
            client: Shared client; one is created per call when omitted
            headers: Extra headers (e.g. authorization)
            clock: Clock for receipts
        """
        self._url = url
        self._timeout = timeout_seconds
        self._client = client
        self._headers = headers or {}
        self._clock = clock or get_clock()

    @classmethod
    def from_config(cls, config: ExecutionConfig, **kwargs) -> "WebhookActionExecutor":
        if not config.webhook_url:
            raise ValueError("execution.webhook_url is not configured")
        return cls(url=config.webhook_url, timeout_seconds=config.webhook_timeout_seconds, **kwargs)

    async def execute(self, action_name: str, context: Dict[str, Any]) -> ActionReceipt:
        headers = {**self._headers, "Idempotency-Key": idempotency_key(action_name, context)}
        payload = {"action": action_name, "context": context}

        try:
            if self._client is not None:
                response = await self._client.post(
                    self._url, json=payload, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ActionExecutionError(
                action_name,
                f"Webhook rejected {action_name}: HTTP {e.response.status_code}",
                cause=e,
            )
        except httpx.HTTPError as e:
            raise ActionExecutionError(
                action_name,
                f"Webhook call for {action_name} failed: {e}",
                cause=e,
            )

        return ActionReceipt(status=ActionStatus.SUCCESS.value, timestamp_utc=self._clock.now())


# ============================================================
# FAN-OUT
# ============================================================


class ActionFanOut:
    """Run a batch of actions concurrently with per-action outcomes."""

    def __init__(
        self,
        executor: ActionExecutor,
        config: Optional[ExecutionConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._executor = executor
        self._config = config or ExecutionConfig()
        self._clock = clock or get_clock()

    async def run(
        self,
        actions: Sequence[Action],
        context: Optional[Dict[str, Any]] = None,
    ) -> Tuple[ActionOutcome, ...]:
        """
        Execute all actions.

        Never raises for a single action's failure; each failure
        is reported as a failed or timeout outcome.
        """
        if not actions:
            return ()

        context = context or {}
        semaphore = asyncio.Semaphore(self._config.max_parallel_actions)

        async def run_with_semaphore(action: Action) -> ActionOutcome:
            async with semaphore:
                return await self._run_one(action, context)

        results = await asyncio.gather(
            *(run_with_semaphore(a) for a in actions),
            return_exceptions=True,
        )

        # Convert escaped exceptions to failed outcomes
        outcomes: List[ActionOutcome] = []
        for action, result in zip(actions, results):
            if isinstance(result, BaseException):
                outcomes.append(self._failed(action, ActionStatus.FAILED, str(result)))
            else:
                outcomes.append(result)

        failed = [o for o in outcomes if not o.succeeded]
        if failed:
            logger.warning(
                f"{len(failed)}/{len(outcomes)} actions did not succeed: "
                f"{[o.action.kind for o in failed]}"
            )
        return tuple(outcomes)

    async def _run_one(self, action: Action, context: Dict[str, Any]) -> ActionOutcome:
        timeout = self._config.action_timeout_seconds
        call_context = {**context, "target": action.target}
        try:
            receipt = await asyncio.wait_for(
                self._executor.execute(action.kind, call_context),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = ActionTimeoutError(action.kind, timeout)
            return self._failed(action, ActionStatus.TIMEOUT, error.message)
        except ActionExecutionError as e:
            return self._failed(action, ActionStatus.FAILED, e.message)
        except Exception as e:
            logger.error(f"Executor raised for {action.kind}: {e}", exc_info=True)
            return self._failed(action, ActionStatus.FAILED, str(e))

        status = ActionStatus.SUCCESS
        if receipt.status != ActionStatus.SUCCESS.value:
            status = ActionStatus.FAILED

        return ActionOutcome(
            action=replace(action, executed_at=receipt.timestamp_utc, outcome=status),
            status=status,
            timestamp=receipt.timestamp_utc,
            error=None if status == ActionStatus.SUCCESS else f"Executor reported {receipt.status}",
        )

    def _failed(self, action: Action, status: ActionStatus, error: str) -> ActionOutcome:
        now = self._clock.now()
        return ActionOutcome(
            action=replace(action, executed_at=now, outcome=status),
            status=status,
            timestamp=now,
            error=error,
        )
