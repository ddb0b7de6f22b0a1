"""
Command processor.

Resolves a raw command to one action, validates and authorizes the
payload, dispatches to the handler while relaying progress, and returns
exactly one Result. Nothing raised by handlers, parsers or providers
escapes process(); only bugs in the processor itself do.
"""

import asyncio
import logging
from datetime import datetime, timezone
from uuid import uuid4

from cmdengine.core.access_control import (
    GrantPermissionChecker,
    PermissionChecker,
    require_permission,
)
from cmdengine.core.actions import Action
from cmdengine.core.capabilities import CapabilityRegistry
from cmdengine.core.context import ContextRegistry
from cmdengine.core.errors import (
    HandlerFault,
    NoActionMatched,
    PayloadValidationError,
    PermissionDenied,
)
from cmdengine.core.progress import NullSink, ProgressSink
from cmdengine.core.schema import validate_payload
from cmdengine.core.types import (
    CommandTranscript,
    Intent,
    IntentSource,
    Plan,
    Result,
    Step,
    User,
)
from cmdengine.engine.matcher import PatternMatcher
from cmdengine.engine.parser import StructuredParser
from cmdengine.observability.audit import AuditLogger
from cmdengine.observability.logging import OperationLogger
from cmdengine.observability.tracing import trace_span

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "no action matched"
NO_MATCH_HINT = (
    "Try rephrasing the command, or check which actions are available "
    "to you (GET /command/status)."
)


class RecordingSink:
    """
    Appends every Step to the Plan, then relays it downstream.

    Runs synchronously inside the handler, so the Plan and the downstream
    sink see steps in emission order.
    """

    def __init__(self, plan: Plan, downstream: ProgressSink):
        self.plan = plan
        self.downstream = downstream

    def emit(self, step: Step) -> None:
        for recorded in self.plan.append(step):
            try:
                self.downstream.emit(recorded)
            except Exception as e:
                logger.warning(f"Progress sink dropped step '{recorded.label}': {e}")


class CommandProcessor:
    """
    Turns free-text commands into authorized action invocations.

    Example:
        processor = CommandProcessor(capabilities, context, matcher, parser)
        result = await processor.process("list posts", user, sink=BufferingSink())
    """

    def __init__(
        self,
        capabilities: CapabilityRegistry,
        context: ContextRegistry,
        matcher: PatternMatcher,
        parser: StructuredParser | None = None,
        permission_checker: PermissionChecker | None = None,
        audit: AuditLogger | None = None,
        parse_timeout: float = 15.0,
    ):
        """
        Args:
            capabilities: Capability registry (owns the action registry)
            context: Context providers for the AI stage
            matcher: Pattern stage rules
            parser: AI stage; None disables the fallback
            permission_checker: Decides permission grants
            audit: Receives one transcript per command
            parse_timeout: Bound on each AI parse call, in seconds
        """
        self.capabilities = capabilities
        self.context = context
        self.matcher = matcher
        self.parser = parser
        self.permission_checker = permission_checker or GrantPermissionChecker()
        self.audit = audit
        self.parse_timeout = parse_timeout

    # -------------------------------------------------------------------------
    # Candidates and intent
    # -------------------------------------------------------------------------

    def visible_actions(self, user: User) -> list[Action]:
        """Enabled actions this user may see, in registration order."""
        visible = []
        for action in self.capabilities.active_actions():
            try:
                if action.visible_to(user):
                    visible.append(action)
            except Exception as e:
                logger.warning(f"Visibility check for {action.name} failed, hiding it: {e}")
        return visible

    async def resolve_intent(self, command: str, user: User) -> Intent:
        """Resolve a command to an Intent without dispatching it."""
        return await self._resolve(command, self.visible_actions(user))

    async def _resolve(self, command: str, candidates: list[Action]) -> Intent:
        async with trace_span("command.resolve", candidates=len(candidates)) as span:
            intent = self.matcher.match(command, [a.name for a in candidates])
            if intent is None:
                intent = await self._parse_with_ai(command, candidates)
            span.set_attribute("intent.source", intent.source.value)
            span.set_attribute("intent.action", intent.action or "")
            return intent

    async def _parse_with_ai(self, command: str, candidates: list[Action]) -> Intent:
        """AI stage. Any failure, timeout or unknown action reads as no match."""
        unmatched = Intent(raw_text=command, source=IntentSource.NONE)
        if self.parser is None or not candidates:
            return unmatched

        context = self.context.collect()
        try:
            outcome = await asyncio.wait_for(
                self.parser.parse(command, candidates, context, self.parse_timeout),
                timeout=self.parse_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"AI parsing timed out after {self.parse_timeout}s")
            return unmatched
        except Exception as e:
            logger.warning(f"AI parsing failed: {e}", exc_info=True)
            return unmatched

        if not isinstance(outcome, Intent) or not outcome.matched:
            return unmatched

        if outcome.action not in {a.name for a in candidates}:
            logger.warning(f"AI parser chose unavailable action '{outcome.action}'")
            return unmatched

        return outcome

    def _lookup(self, intent: Intent) -> Action:
        action = self.capabilities.actions.resolve(intent.action) if intent.action else None
        if action is None:
            raise NoActionMatched(intent.raw_text)
        return action

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process(
        self,
        command: str,
        user: User,
        sink: ProgressSink | None = None,
    ) -> Result:
        """
        Process one command end to end.

        Args:
            command: Raw command text
            user: Caller
            sink: Receives progress Steps as they happen

        Returns:
            Exactly one Result (success, partial or failed)
        """
        command_id = uuid4().hex
        started_at = datetime.now(timezone.utc)
        plan = Plan()
        recorder = RecordingSink(plan, sink or NullSink())
        intent = Intent(raw_text=command)
        action: Action | None = None

        async with OperationLogger("process_command", command_id=command_id, user_id=user.id) as op:
            async with trace_span("command.process", command_id=command_id, user_id=user.id):
                try:
                    candidates = self.visible_actions(user)
                    intent = await self._resolve(command, candidates)
                    action = self._lookup(intent)
                    intent.payload = validate_payload(action.payload_schema, intent.payload)
                    require_permission(self.permission_checker, user, action.permission)
                    result = await self._dispatch(action, intent.payload, recorder)

                except NoActionMatched:
                    logger.info("No action matched command")
                    result = Result.fail(NO_MATCH_MESSAGE, data={"hint": NO_MATCH_HINT})

                except PayloadValidationError as e:
                    logger.info(f"Payload for {action.name} rejected: {e}")
                    result = Result.fail(str(e), data={"action": action.name, "errors": e.errors})

                except PermissionDenied as e:
                    logger.info(f"User {user.id} denied {action.name}")
                    if self.audit is not None:
                        self.audit.log_permission_denied(user.id, e.permission, action.name)
                    result = Result.fail(
                        f"You do not have permission to run {action.name}",
                        data={"action": action.name, "permission": e.permission},
                    )

            if not result.completed_steps:
                result.completed_steps = plan.describe()
            op.set_result(
                action=intent.action,
                source=intent.source.value,
                status=result.status.value,
                steps=len(plan),
            )

        if self.audit is not None:
            self.audit.record(CommandTranscript(
                user=user,
                command=command,
                intent=intent,
                plan=plan,
                result=result,
                command_id=command_id,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            ))

        return result

    async def _dispatch(self, action: Action, payload: dict, recorder: RecordingSink) -> Result:
        """Invoke the handler; unexpected failures become a HandlerFault Result."""
        async with trace_span("command.dispatch", action=action.name):
            try:
                result = await action.handle_with_progress(payload, recorder)
                if not isinstance(result, Result):
                    raise TypeError(f"handler returned {type(result).__name__}, expected Result")
            except Exception as e:
                fault = HandlerFault(action.name, e)
                logger.error(f"{fault}: {e}", exc_info=True)
                return self._fault_result(fault, recorder.plan)
        return result

    def _fault_result(self, fault: HandlerFault, plan: Plan) -> Result:
        if plan.has_artifact():
            return Result.partial(
                f"{fault.action} saved its main result, but a later step failed",
                data=plan.artifact_data(),
            )
        return Result.fail(f"{fault.action} failed unexpectedly")
