from datetime import datetime
from types import SimpleNamespace

import pytest

from errors import ValidationFailed
from workflow import TASK_STATUSES, TaskWorkflow, priority_rank, status_rank


def make_task(status='TODO', completed_at=None):
    return SimpleNamespace(status=status, completed_at=completed_at)


def test_ranks_follow_workflow_order():
    assert [status_rank(s) for s in TASK_STATUSES] == [0, 1, 2, 3]
    assert priority_rank('URGENT') > priority_rank('HIGH') > priority_rank('MEDIUM') > priority_rank('LOW')


def test_permissive_allows_any_jump():
    workflow = TaskWorkflow()
    task = make_task('TODO')

    assert workflow.apply(task, 'DONE') is True
    assert task.status == 'DONE'

    assert workflow.apply(task, 'TODO') is True
    assert task.status == 'TODO'


def test_strict_allows_only_stay_or_next_step():
    workflow = TaskWorkflow(strict=True)

    assert workflow.allowed_targets('TODO') == {'TODO', 'IN_PROGRESS'}
    assert workflow.allowed_targets('IN_REVIEW') == {'IN_REVIEW', 'DONE'}
    assert workflow.allowed_targets('DONE') == {'DONE'}

    with pytest.raises(ValidationFailed) as exc:
        workflow.apply(make_task('TODO'), 'DONE')
    assert 'status' in exc.value.errors

    with pytest.raises(ValidationFailed):
        workflow.apply(make_task('IN_PROGRESS'), 'TODO')


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationFailed) as exc:
        TaskWorkflow().apply(make_task(), 'BLOCKED')
    assert 'status' in exc.value.errors


def test_same_status_is_a_no_op():
    finished = datetime(2026, 1, 1)
    task = make_task('DONE', completed_at=finished)

    assert TaskWorkflow(strict=True).apply(task, 'DONE') is False
    assert task.completed_at == finished


def test_completed_at_tracks_done():
    workflow = TaskWorkflow()
    task = make_task('IN_REVIEW')

    workflow.apply(task, 'DONE')
    assert task.completed_at is not None

    workflow.apply(task, 'IN_PROGRESS')
    assert task.completed_at is None


def test_rejected_transition_leaves_task_untouched():
    task = make_task('TODO')

    with pytest.raises(ValidationFailed):
        TaskWorkflow(strict=True).apply(task, 'IN_REVIEW')

    assert task.status == 'TODO'
    assert task.completed_at is None
