"""NiceGUI chat page rendering a streaming query session."""

import logging

from nicegui import ui

from dataroom_chat.client.auth import TokenError, token_provider_from_config
from dataroom_chat.client.config import get_client_config
from dataroom_chat.client.connection import ConnectionManager
from dataroom_chat.client.history import ChatHistoryClient, HistoryError
from dataroom_chat.models.messages import Message, MessageKind
from dataroom_chat.models.schemas import SearchMode
from dataroom_chat.parsing.answer_parser import strip_citation_markers
from dataroom_chat.session.coalescer import AsyncioTicker
from dataroom_chat.session.controller import QuerySession
from dataroom_chat.session.sources import SourceActivation
from dataroom_chat.ui.markup import citation_badges, markdown_to_html

logger = logging.getLogger(__name__)

SEARCH_MODES = {
    SearchMode.AUTO.value: "Auto",
    SearchMode.REASONING.value: "Reasoning",
    SearchMode.PLANNING.value: "Planning",
    SearchMode.DEEP_RESEARCH.value: "Deep research",
}


CUSTOM_CSS = """
<link href="https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600&display=swap"
      rel="stylesheet">
<style>
    * { font-family: 'Inter', sans-serif; }
    body { background: #f5f5f5; min-height: 100vh; }

    .app-container {
        background: white;
        border-radius: 12px;
        box-shadow: 0 2px 8px rgba(0, 0, 0, 0.1);
        overflow: hidden;
    }
    .header { background: linear-gradient(135deg, #334155 0%, #0f766e 100%); }

    .message-user {
        background: #0f766e;
        color: white;
        border-radius: 18px 18px 4px 18px;
    }
    .message-assistant {
        background: #f3f4f6;
        color: #1f2937;
        border-radius: 18px 18px 18px 4px;
    }
    .message-error {
        background: #fef2f2;
        color: #991b1b;
        border: 1px solid #fecaca;
        border-radius: 12px;
    }

    .citation-badge {
        display: inline-flex;
        justify-content: center;
        align-items: center;
        min-width: 1.25rem;
        height: 1.25rem;
        margin: 0 0.2rem;
        border-radius: 0.5rem;
        background: #94a3b8;
        color: white;
        font-size: 0.7rem;
    }

    .batch-active { border-left: 3px solid #0f766e; }
    .batch-done { border-left: 3px solid #cbd5e1; opacity: 0.7; }

    .typing-dot {
        width: 8px; height: 8px;
        background: #0f766e;
        border-radius: 50%;
        animation: bounce 1.4s infinite ease-in-out;
    }
    .typing-dot:nth-child(2) { animation-delay: 0.2s; }
    .typing-dot:nth-child(3) { animation-delay: 0.4s; }
    @keyframes bounce {
        0%, 60%, 100% { transform: translateY(0); }
        30% { transform: translateY(-6px); }
    }

    .input-box {
        background: #f9fafb;
        border: 1px solid #e5e7eb;
        border-radius: 12px;
    }
    .input-box:focus-within { border-color: #0f766e; }
</style>
"""


@ui.page("/")
def chat_page() -> None:
    """Main chat page."""
    ui.add_head_html(CUSTOM_CSS)

    config = get_client_config()
    try:
        token_provider = token_provider_from_config(config)
        connection = ConnectionManager(config, token_provider)
    except TokenError as e:
        ui.label(f"Cannot start chat: {e}").classes("text-red-600 p-8")
        return

    def on_source_activated(activation: SourceActivation) -> None:
        page = f" (page {activation.location.page})" if activation.location else ""
        ui.notify(f"Opening {activation.display_name}{page}")

    try:
        session = QuerySession(
            connection,
            config.collection_id,
            ticker=AsyncioTicker(config.redraw_interval),
            on_source_activated=on_source_activated,
        )
    except ValueError as e:
        ui.label(f"Cannot start chat: {e}").classes("text-red-600 p-8")
        return

    history_client = ChatHistoryClient(config, token_provider)
    context = session.context

    messages_container: ui.column
    input_field: ui.textarea
    mode_select: ui.select
    send_btn: ui.button

    def render_sources(message: Message) -> None:
        if not message.citations and not message.sub_sources:
            return
        with ui.row().classes("gap-2 mt-2 flex-wrap"):
            seen: set[str] = set()
            for citation in message.citations:
                if citation.step_number in seen:
                    continue
                seen.add(citation.step_number)
                name = session.resolver.resolve_file_name(citation.file_key)
                ui.button(
                    f"{citation.step_number} · {name}",
                    on_click=lambda c=citation: session.activate_source(c.file_key, c.chunk_text),
                ).props("flat dense no-caps size=sm")
            for name, file_key in message.sub_sources.items():
                ui.button(
                    name,
                    icon="description",
                    on_click=lambda k=file_key: session.activate_source(k),
                ).props("outline dense no-caps size=sm")

    def render_answer(message: Message) -> None:
        if message.batches:
            with ui.column().classes("w-full gap-1 mb-2"):
                for batch in message.batches:
                    css = "batch-active" if batch.is_active else "batch-done"
                    ui.label(
                        f"Step {batch.step_number} of {batch.total_steps}: {batch.description}"
                    ).classes(f"text-xs text-gray-600 pl-2 {css}")

        if message.steps:
            with ui.expansion("Reasoning", icon="psychology").classes("w-full text-sm"):
                for step in message.steps:
                    html = citation_badges(markdown_to_html(step.content), message.citations)
                    ui.html(f"<strong>{step.number}.</strong> {html}", sanitize=False).classes(
                        "text-xs leading-relaxed"
                    )

        if message.content:
            html = citation_badges(markdown_to_html(message.content), message.citations)
            ui.html(html, sanitize=False).classes("text-sm leading-relaxed")
            ui.button(
                icon="content_copy",
                on_click=lambda m=message: ui.clipboard.write(strip_citation_markers(m.content)),
            ).props("flat round dense size=sm").classes("self-end")
        elif message.progress_text:
            ui.label(message.progress_text).classes("text-sm text-gray-500 italic")

        render_sources(message)

    def render_message(message: Message, is_last: bool) -> None:
        time_text = message.timestamp.strftime("%I:%M %p") if message.timestamp else ""

        if message.kind == MessageKind.QUESTION:
            with ui.row().classes("w-full justify-end"):
                with ui.column().classes("max-w-[70%] gap-1"):
                    with ui.element("div").classes("px-4 py-3 message-user"):
                        ui.label(message.content).classes("text-sm whitespace-pre-wrap")
                    ui.label(time_text).classes("text-[10px] text-gray-400 self-end")
            return

        if message.kind == MessageKind.ERROR:
            with ui.row().classes("w-full px-4 py-3 message-error items-center justify-between"):
                ui.label(message.content).classes("text-sm whitespace-pre-wrap")
                if is_last and context.retry_available:
                    ui.button("Retry", icon="refresh", on_click=retry).props("flat dense color=red")
            return

        with ui.row().classes("w-full justify-start"):
            with ui.column().classes("max-w-[85%] gap-1"):
                with ui.column().classes("px-4 py-3 message-assistant gap-1"):
                    render_answer(message)
                ui.label(time_text).classes("text-[10px] text-gray-400")

    def render_status_indicator(text: str) -> None:
        with ui.row().classes("items-center gap-2 px-2"):
            with ui.row().classes("gap-1"):
                for _ in range(3):
                    ui.element("div").classes("typing-dot")
            ui.label(text).classes("text-sm text-gray-500 italic")

    def refresh_messages(messages: list[Message] | None = None) -> None:
        messages = context.messages if messages is None else messages
        messages_container.clear()
        with messages_container:
            if not messages:
                with ui.column().classes("w-full h-64 items-center justify-center gap-3"):
                    ui.icon("forum").classes("text-5xl text-gray-300")
                    ui.label("Ask a question about this dataroom").classes("text-lg text-gray-400")
                return
            for index, message in enumerate(messages):
                render_message(message, is_last=index == len(messages) - 1)
            if context.is_busy:
                last = context.last_message
                progress = last.progress_text if last and last.kind == MessageKind.ANSWER else ""
                render_status_indicator(progress or "Thinking")
        if context.is_busy:
            send_btn.disable()
        else:
            send_btn.enable()

    async def send_message() -> None:
        text = input_field.value.strip()
        if not text or context.is_busy:
            return
        input_field.value = ""
        await session.submit(text, mode=SearchMode(mode_select.value))

    async def retry() -> None:
        await session.retry()

    def new_chat() -> None:
        session.new_chat()

    async def show_history() -> None:
        try:
            threads = await history_client.list_threads(session.collection_id)
        except HistoryError as e:
            ui.notify(f"Failed to load chat history: {e}", type="negative")
            return

        with ui.dialog() as dialog, ui.card().classes("w-[32rem]"):
            ui.label("Chat history").classes("text-lg font-semibold")
            if not threads:
                ui.label("No previous conversations").classes("text-gray-400")
            for thread in threads:

                async def open_thread(thread_id: str = thread.thread_id) -> None:
                    dialog.close()
                    try:
                        await session.load_thread(thread_id, history_client)
                    except HistoryError as e:
                        ui.notify(f"Failed to load chat thread: {e}", type="negative")

                ui.button(
                    thread.initial_query or thread.thread_id, on_click=open_thread
                ).props("flat no-caps align=left").classes("w-full")
        dialog.open()

    async def close_connection() -> None:
        await connection.close()

    # === UI Layout ===
    with (
        ui.element("div").classes("w-full min-h-screen p-4 md:p-8"),
        ui.column().classes("w-full max-w-4xl mx-auto app-container").style(
            "height: calc(100vh - 4rem)"
        ),
    ):
        with ui.row().classes("w-full header px-5 py-4 items-center justify-between"):
            with ui.row().classes("items-center gap-3"):
                ui.icon("travel_explore").classes("text-white text-3xl")
                ui.label("Dataroom Chat").classes("text-lg font-semibold text-white")
            with ui.row().classes("items-center gap-2"):
                ui.button(icon="history", on_click=show_history).props("flat round color=white")
                ui.button(icon="add", on_click=new_chat).props("flat round color=white")

        with (
            ui.scroll_area().classes("flex-grow w-full bg-gray-50"),
            ui.column().classes("w-full p-5"),
        ):
            messages_container = ui.column().classes("w-full gap-4")

        with ui.row().classes("w-full p-4 gap-3 items-end bg-white border-t"):
            mode_select = ui.select(SEARCH_MODES, value=SearchMode.AUTO.value).props(
                "dense borderless"
            )
            with ui.element("div").classes("flex-grow input-box px-3 py-2"):
                input_field = (
                    ui.textarea(placeholder="Ask about the documents...")
                    .props("autogrow borderless dense rows=1")
                    .classes("w-full")
                    .on("keydown.enter.prevent", send_message)
                )
            send_btn = ui.button(icon="send", on_click=send_message).props(
                "round unelevated color=teal"
            )

    context.add_listener(refresh_messages)
    ui.context.client.on_disconnect(close_connection)


def main() -> None:
    ui.run(title="Dataroom Chat", port=8080, reload=False)


if __name__ == "__main__":
    main()
