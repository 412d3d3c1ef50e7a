import pytest

from fakes import FakePipeline
from submission_console.services.messages import MessageBoard
from submission_console.services.polling import PollScheduler
from submission_console.settings import get_settings


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def pipeline():
    return FakePipeline()


@pytest.fixture
def poll_scheduler():
    """Scheduler that is never started: jobs stay pending and are ticked by hand."""
    return PollScheduler()


@pytest.fixture
def messages():
    return MessageBoard()
