import asyncio
import logging
from json import JSONDecodeError
from typing import AsyncIterator

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from zenorun.config import config
from zenorun.exceptions import ZenorunError
from zenorun.process import LogStream
from zenorun.runner import Orchestrator
from zenorun.schemas import ApiWorkflowRequest, WorkflowRequest

logger = logging.getLogger(__name__)


class RunManager:
    """Runs one workflow at a time, a new run stops the previous one."""

    orchestrator: Orchestrator
    _current: asyncio.Task | None

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator
        self._current = None

    @property
    def running(self) -> bool:
        return self._current is not None and not self._current.done()

    async def stop(self) -> bool:
        task = self._current
        if task is None or task.done():
            return False
        logger.info('Stopping current run')
        task.cancel()
        await asyncio.wait([task])
        return True

    async def stream(self, request: WorkflowRequest) -> AsyncIterator[str]:
        await self.stop()
        log = LogStream()
        task = asyncio.create_task(self.orchestrator.execute(request, log))
        self._current = task
        try:
            async for line in log:
                yield f'{line}\n'
            await asyncio.wait([task])
            if task.cancelled():
                yield '[error] run was stopped\n'
            elif (exc := task.exception()) is not None:
                if not isinstance(exc, ZenorunError):
                    logger.error('Run failed', exc_info=exc)
                yield f'[error] {exc}\n'
            else:
                yield f'[exit] {task.result().exit_code}\n'
        finally:
            if not task.done():
                # client went away
                task.cancel()
                await asyncio.wait([task])
            if self._current is task:
                self._current = None


async def run(request: Request):
    try:
        payload = await request.json()
    except JSONDecodeError:
        return JSONResponse({'error': 'invalid json'}, 400)
    try:
        api_request = ApiWorkflowRequest.model_validate(payload)
    except ValidationError as e:
        return JSONResponse(
            {'errors': e.errors(include_url=False, include_context=False)}, 422
        )
    workflow_request = WorkflowRequest.model_validate(api_request.model_dump())
    manager: RunManager = request.app.state.manager
    return StreamingResponse(manager.stream(workflow_request), media_type='text/plain')


async def stop(request: Request):
    manager: RunManager = request.app.state.manager
    return JSONResponse({'stopped': await manager.stop()})


def create_app(orchestrator: Orchestrator | None = None) -> Starlette:
    res = Starlette(
        debug=config.debug,
        routes=[
            Route('/run', run, methods=['POST']),
            Route('/stop', stop, methods=['POST']),
        ],
    )
    res.state.manager = RunManager(orchestrator or Orchestrator())
    return res


app = create_app()
