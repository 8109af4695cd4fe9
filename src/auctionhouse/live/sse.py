import json
from flask import Response, stream_with_context
from .registry import QueueSubscriber


def format_event(event):
    return f"event: {event['type']}\n" + f"data: {json.dumps(event)}\n\n"


def stream(registry, auction_id, maxsize=100):
    sub = QueueSubscriber(maxsize=maxsize)
    registry.subscribe(auction_id, sub)
    try:
        # Primer "ping" para abrir
        yield "event: ping\ndata: {}\n\n"
        while True:
            yield format_event(sub.queue.get())  # bloqueante
    except GeneratorExit:
        pass
    finally:
        registry.remove(sub)


def sse_response(generator):
    return Response(
        stream_with_context(generator),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
