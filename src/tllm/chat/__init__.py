"""tllm.chat: chat session, render loop, persistence and clipboard."""

from tllm.chat.app import App
from tllm.chat.render import Layout, Rect, Renderer, compute_layout
from tllm.chat.session import SEPARATOR, ChatSession, transcript_text
from tllm.chat.worker import Delta, Done, Failed, WorkerRequest, run_request, start_worker

__all__ = [
    "App",
    "ChatSession",
    "Delta",
    "Done",
    "Failed",
    "Layout",
    "Rect",
    "Renderer",
    "SEPARATOR",
    "WorkerRequest",
    "compute_layout",
    "run_request",
    "start_worker",
    "transcript_text",
]
