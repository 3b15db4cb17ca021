from __future__ import annotations

import asyncio
import io


def auth_headers(email: str) -> dict[str, str]:
    return {"Authorization": f"Bearer dev_{email}"}


def event_form(**overrides) -> dict[str, str]:
    form = {
        "title": "Rooftop Jazz Night",
        "description": "Live quartet and city views",
        "date": "2030-06-01T19:00:00Z",
        "location": "Berlin",
        "category": "music",
        "maxAttendees": "10",
    }
    form.update({key: str(value) for key, value in overrides.items()})
    return form


def png_file(name: str = "cover.png", payload: bytes = b"\x89PNG\r\n\x1a\nfake") -> tuple:
    return (name, io.BytesIO(payload), "image/png")


def drain(loop: asyncio.AbstractEventLoop, connection) -> list[dict]:
    """Collect every message queued for ``connection`` so far."""

    async def _collect() -> list[dict]:
        messages = []
        while True:
            try:
                message = await asyncio.wait_for(connection.next_message(), timeout=0.05)
            except asyncio.TimeoutError:
                return messages
            messages.append(message)

    return loop.run_until_complete(_collect())
