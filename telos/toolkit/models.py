"""Model utilities."""

from functools import cache
from typing import Sequence

from colorama import Fore
from dotenv import load_dotenv
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_openai import ChatOpenAI

from telos.config import PRECISE_MODEL_NAME, PROMPT_COLOR, VARIANT_MODEL_NAME

load_dotenv(override=True)


@cache
def precise_model() -> BaseChatModel:
    """Deterministic model used for answering Telos calls."""
    return ChatOpenAI(temperature=0, model=PRECISE_MODEL_NAME, verbose=False)


@cache
def variant_model() -> BaseChatModel:
    """Higher-temperature model used for generating proposals."""
    return ChatOpenAI(temperature=1.0, model=VARIANT_MODEL_NAME, verbose=False)


def query_model_message(
    model: BaseChatModel,
    messages: Sequence[BaseMessage],
    color: str = Fore.RESET,
    preamble: str | None = None,
    printout: bool = True,
) -> AIMessage:
    """Query an LLM chat model and return the full reply message. `preamble` is printed before the result."""
    if preamble is not None and printout:
        print(f"{PROMPT_COLOR}{preamble}{Fore.RESET}")
    result = model.invoke(list(messages))
    assert isinstance(result, AIMessage), f"Unexpected model reply: {result!r}"
    if printout:
        print(f"{color}{result.content}{Fore.RESET}")
    return result


def query_model(
    model: BaseChatModel,
    messages: Sequence[BaseMessage],
    color: str = Fore.RESET,
    preamble: str | None = None,
    printout: bool = True,
) -> str:
    """Query an LLM chat model. `preamble` is printed before the result."""
    return str(
        query_model_message(
            model, messages, color=color, preamble=preamble, printout=printout
        ).content
    )


def format_messages(messages: Sequence[BaseMessage]) -> str:
    """Format model messages into something printable."""
    return "\n\n---\n\n".join(
        [f"[{message.type.upper()}]:\n\n{message.content}" for message in messages]  # type: ignore
    )
