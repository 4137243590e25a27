import pytest

from result_filter import ParsedRecord, TaskResultBatch
from results_store import ResultsStore
from task_context import CompletedTask, UserContext


@pytest.fixture
def store(tmp_path):
    return ResultsStore(str(tmp_path / "results.db"))


@pytest.fixture
def user():
    return UserContext("user_a")


@pytest.fixture
def other_user():
    return UserContext("user_b")


@pytest.fixture
def task():
    return CompletedTask(task_id="task_1", task_name="Dental clinics", original_query="dentists in Lisbon")


def make_record(name="Acme", **fields) -> ParsedRecord:
    return ParsedRecord(organization_name=name, **fields)


def make_batch(*records, task_id="task_1") -> TaskResultBatch:
    return TaskResultBatch(task_id=task_id, records=tuple(records))
