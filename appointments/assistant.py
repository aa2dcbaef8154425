"""Chat assistant — OpenAI tool-calling front end for the booking flow.

One ``/api/chat`` turn works like this:

  1. The user's message (plus prior history) goes to the model with the
     ``book_appointment`` tool available.
  2. If the model answers in text, that text is the reply.
  3. If it calls ``book_appointment``, the arguments are validated and the
     booking is started in the background.  The caller gets a placeholder
     reply and a ``statusRequestId`` to stream progress from.  Once the job
     succeeds, the model is asked a second time, with the booking result as
     the tool output, for the confirmation text.
  4. Any other tool call (or a booking that can't be started) is answered
     with an error tool message and a second completion.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from openai import AsyncOpenAI

from appointments.errors import BookingValidationError, SubmissionFailed
from appointments.models.booking import BookingResult
from appointments.orchestrator import PLACEHOLDER_REPLY, BookingOrchestrator, Confirmer
from appointments.tools.booking import BookAppointmentTool

log = logging.getLogger("appointments.assistant")

SYSTEM_PROMPT = """
You are an AI assistant embedded in a website chat widget.

You help users book appointments for a hair salon in California.

Current date and time: {now} ({weekday})

If customer does not specify a provider, use the default provider "{default_provider}".

You MUST:

- Ask clarifying questions to collect: name, phone, service, and desired date/time.
- Once you have enough information, call the "book_appointment" tool.
- After booking, clearly confirm the date/time and any confirmation details.
- If the phone number can be formatted properly, do it for the customer. If ambiguous, ask the customer to clarify.

If the user asks questions unrelated to booking, answer them briefly and politely.
"""


def build_system_prompt(default_provider: str = "", now: Optional[datetime] = None) -> str:
    now = now or datetime.now().astimezone()
    return SYSTEM_PROMPT.format(
        now=now.strftime("%B %d, %Y, %I:%M %p %Z").strip(),
        weekday=now.strftime("%A"),
        default_provider=default_provider,
    )


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass
class AssistantTurn:
    """The model's answer to one request."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    message: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatReply:
    reply: str
    history: list[dict[str, str]]
    status_request_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"reply": self.reply, "history": self.history}
        if self.status_request_id:
            data["statusRequestId"] = self.status_request_id
        return data


class ChatAssistant:
    """Wraps the OpenAI chat completions API for the booking conversation."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        default_provider: str = "",
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._default_provider = default_provider
        self._client = client
        self.booking_tool = BookAppointmentTool(default_provider=default_provider)

    @property
    def client(self) -> AsyncOpenAI:
        # Created lazily so the app can start without an API key.
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key or None)
        return self._client

    def build_messages(self, message: str, history: Any = None) -> list[dict[str, Any]]:
        prior = history if isinstance(history, list) else []
        return [
            {"role": "system", "content": build_system_prompt(self._default_provider)},
            *prior,
            {"role": "user", "content": message},
        ]

    async def respond(self, messages: list[dict[str, Any]]) -> AssistantTurn:
        """First completion: let the model decide whether to call a tool."""
        completion = await self.client.chat.completions.create(
            model=self._model,
            messages=messages,
            tools=[self.booking_tool.to_openai_schema()],
            tool_choice="auto",
        )
        if not completion.choices:
            raise RuntimeError("No message returned from LLM")

        msg = completion.choices[0].message
        calls = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "{}")
            for tc in (msg.tool_calls or [])
            if getattr(tc, "function", None) is not None
        ]
        log.info("LLM replied (tool_calls=%s)", [c.name for c in calls] or "none")
        return AssistantTurn(
            content=msg.content or "",
            tool_calls=calls,
            message=msg.model_dump(exclude_none=True),
        )

    async def complete_tool_call(
        self,
        messages: list[dict[str, Any]],
        turn: AssistantTurn,
        tool_call: ToolCall,
        output: dict[str, Any],
    ) -> str:
        """Second completion with ``output`` as the tool call's result."""
        second = [
            *messages,
            turn.message,
            {"role": "tool", "tool_call_id": tool_call.id, "content": json.dumps(output)},
        ]
        completion = await self.client.chat.completions.create(model=self._model, messages=second)
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    def booking_confirmer(
        self,
        messages: list[dict[str, Any]],
        turn: AssistantTurn,
        tool_call: ToolCall,
    ) -> Confirmer:
        """Confirmer that phrases the booking result in the conversation's context."""

        async def confirm(result: BookingResult) -> str:
            return await self.complete_tool_call(
                messages, turn, tool_call, result.model_dump(mode="json")
            )

        return confirm

    async def chat(
        self,
        message: str,
        history: Any,
        orchestrator: BookingOrchestrator,
    ) -> ChatReply:
        """Run one chat turn, starting a booking if the model asks for one."""
        prior = history if isinstance(history, list) else []
        messages = self.build_messages(message, prior)
        turn = await self.respond(messages)
        reply = turn.content

        for call in turn.tool_calls:
            if call.name != self.booking_tool.name:
                log.warning("Unknown tool requested: %s", call.name)
                reply = await self.complete_tool_call(
                    messages, turn, call, {"error": f"Unknown tool: {call.name}"}
                )
                continue

            try:
                request = self.booking_tool.parse_arguments(call.arguments)
                correlation_id = await orchestrator.start_booking(
                    request, confirmer=self.booking_confirmer(messages, turn, call)
                )
            except BookingValidationError as exc:
                log.info("book_appointment rejected: %s", exc)
                reply = await self.complete_tool_call(
                    messages, turn, call, {"error": str(exc), "details": exc.details}
                )
                continue
            except SubmissionFailed as exc:
                log.error("book_appointment submission failed: %s", exc)
                reply = await self.complete_tool_call(messages, turn, call, {"error": str(exc)})
                continue

            return ChatReply(
                reply=PLACEHOLDER_REPLY,
                history=_extend_history(prior, message, PLACEHOLDER_REPLY),
                status_request_id=correlation_id,
            )

        return ChatReply(reply=reply, history=_extend_history(prior, message, reply))


def _extend_history(prior: list, message: str, reply: str) -> list[dict[str, str]]:
    return [
        *prior,
        {"role": "user", "content": message},
        {"role": "assistant", "content": reply},
    ]
