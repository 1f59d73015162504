"""Test helpers to stub the OpenAI Responses client used by ``famledger.insights``.

Tests monkeypatch ``famledger.insights.OpenAI`` with a class built here. The
stub records each ``responses.create(...)`` call's kwargs and either returns a
response whose ``output_text`` comes from ``reply`` or raises ``error``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any


class _Resp:
    def __init__(self, output_text: str) -> None:
        self.output_text = output_text


def make_openai_stub(
    reply: str | Callable[[dict[str, Any]], str] = "",
    *,
    calls_out: list[dict[str, Any]] | None = None,
    error: Exception | None = None,
) -> type:
    """Return a class matching the ``openai.OpenAI`` constructor/``responses`` shape.

    Parameters
    ----------
    reply:
        Fixed ``output_text`` or a callable receiving the call kwargs.
    calls_out:
        Appended with each call's kwargs for lightweight assertions.
    error:
        When set, ``responses.create`` raises it instead of replying.
    """

    calls = calls_out if calls_out is not None else []

    class _Responses:
        def create(self, **kwargs: Any) -> _Resp:
            calls.append(kwargs)
            if error is not None:
                raise error
            text = reply(kwargs) if callable(reply) else reply
            return _Resp(text)

    class _Client:
        def __init__(self, *a: Any, **kw: Any) -> None:
            self.responses = _Responses()

    return _Client
