"""JSON-lines transport over stdin/stdout.

Each input line is ``{"id": <request id>, "operation": <name>, "payload": <value>}``
and produces exactly one output line ``{"id": <request id>, "result": <value>}``.
Requests run concurrently, so responses may come back out of order; the
request id pairs them up. On EOF every live handle is closed.
"""

import asyncio
import json
import sys
from typing import IO, Any, Dict, Optional, Set

from ..logging import get_logger
from .dispatcher import RequestDispatcher


class StdioServer:
    """Serves a ``RequestDispatcher`` over line-delimited JSON."""

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        reader: Optional[IO[str]] = None,
        writer: Optional[IO[str]] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.reader = reader or sys.stdin
        self.writer = writer or sys.stdout
        self.logger = get_logger("dbexplorer.api.stdio")
        self._write_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    async def serve(self) -> None:
        loop = asyncio.get_running_loop()
        self.logger.info("Serving requests on stdio", operations=len(self.dispatcher.operations))
        try:
            while True:
                # blocking readline runs in the default executor
                line = await loop.run_in_executor(None, self.reader.readline)
                if not line:
                    break
                if not line.strip():
                    continue
                task = asyncio.create_task(self._handle_line(line))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

            if self._tasks:
                await asyncio.gather(*self._tasks)
        finally:
            await self.dispatcher.close()
            self.logger.info("Input closed, live handles released")

    async def _handle_line(self, line: str) -> None:
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            await self._write({"id": None, "error": f"Malformed request: {e.msg}"})
            return
        if not isinstance(request, dict) or not isinstance(request.get("operation"), str):
            request_id = request.get("id") if isinstance(request, dict) else None
            await self._write(
                {"id": request_id, "error": "Request must be an object with an operation"}
            )
            return

        result = await self.dispatcher.dispatch(request["operation"], request.get("payload"))
        await self._write({"id": request.get("id"), "result": result})

    async def _write(self, message: Dict[str, Any]) -> None:
        # non-JSON values (dates, decimals, ObjectIds) are rendered with str()
        text = json.dumps(message, default=str, ensure_ascii=False)
        async with self._write_lock:
            self.writer.write(text + "\n")
            self.writer.flush()


async def serve_stdio(dispatcher: RequestDispatcher) -> None:
    await StdioServer(dispatcher).serve()
