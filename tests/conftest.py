from __future__ import annotations

import asyncio
from typing import Callable, Optional

import pytest

from fakes import CountingValidator, FakeChannel, FakeEngine
from smartshare_panel.controller import PanelController, PanelState
from smartshare_panel.extraction import ExtractionGateway
from smartshare_panel.storage import SessionStorage, StorageArea
from smartshare_panel.summaries.history import HistoryStore
from smartshare_panel.summaries.session import SummarizationSessionManager
from smartshare_panel.summaries.types import SummarizationSettings


@pytest.fixture
def session_storage() -> SessionStorage:
    return SessionStorage()


@pytest.fixture
def history() -> HistoryStore:
    return HistoryStore(StorageArea())


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def validator() -> CountingValidator:
    return CountingValidator()


@pytest.fixture
def make_controller(session_storage, history, engine, channel, validator) -> Callable[..., PanelController]:
    """
    Build a PanelController wired to fakes.

    Example:
        controller = make_controller(settings=SummarizationSettings())
        await controller.start()
    """

    def factory(
        settings: Optional[SummarizationSettings] = None,
        user_activation: bool = True,
    ) -> PanelController:
        return PanelController(
            session_storage=session_storage,
            gateway=ExtractionGateway(channel.send_message, session_storage),
            manager=SummarizationSessionManager(engine),
            history=history,
            settings=settings,
            validator=validator,
            user_activation=user_activation,
        )

    return factory


async def wait_for_state(controller: PanelController, state: PanelState, attempts: int = 50) -> None:
    for _ in range(attempts):
        if controller.state is state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"controller stayed in {controller.state} instead of {state}")


@pytest.fixture
def wait_state():
    return wait_for_state
