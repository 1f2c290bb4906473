from __future__ import annotations

from pathlib import Path

import pytest

from session_workflow.engine import FinalizeEngine
from session_workflow.engine.checklist import PHASE_NOTE_MARKER
from session_workflow.gateway import FakeGateway, FakeGitRepository, Issue, PullRequest
from session_workflow.sessions import Session, SessionIntegrityError, SessionStore, SessionType
from session_workflow.tasks import TaskLedger


PARENT_BODY = """## Feature: Checkout

- [x] Phase 1: Setup (#601)
- [x] Phase 2: Data model (#602)
- [x] Phase 3: Cart API (#603)
- [ ] Phase 4: Payments (#604)
- [ ] Phase 5: Receipts (#605)
- [ ] Phase 6: Polish (#606)
"""

SPEC_TASKS = """# Tasks: Checkout

## Phase 4
- [x] T010 Payment intent model
- [ ] T011 Stripe adapter
- [ ] T012 Webhook handler
"""


def _merged_pr(number: int = 77, *, draft: bool = False, body: str = "Payments work.") -> PullRequest:
    return PullRequest(
        number=number,
        state="merged",
        merged=True,
        draft=draft,
        url=f"https://github.com/example/repo/pull/{number}",
        body=body,
        head="feature/session",
        base="main",
    )


def _engine(tmp_path: Path, gateway: FakeGateway) -> tuple[FinalizeEngine, SessionStore]:
    store = SessionStore(tmp_path / ".session")
    engine = FinalizeEngine(
        gateway, store=store, specs_dir=tmp_path / "specs", git=FakeGitRepository()
    )
    return engine, store


def _speckit_session(**overrides) -> Session:
    payload = {
        "session_id": "2025-10-03-2",
        "type": "speckit",
        "feature_id": "001-checkout",
        "parent_issue": 600,
        "issue_number": 604,
        "pr_number": 77,
        "touched_tasks": ["T011", "T012"],
    }
    payload.update(overrides)
    return Session.model_validate(payload)


def _write_spec_tasks(tmp_path: Path, text: str = SPEC_TASKS) -> Path:
    path = tmp_path / "specs" / "001-checkout" / "tasks.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _speckit_gateway(*, parent_body: str = PARENT_BODY, draft: bool = True) -> FakeGateway:
    return FakeGateway(
        prs=[_merged_pr(draft=draft)],
        issues=[
            Issue(number=600, state="open", body=parent_body, title="Checkout"),
            Issue(number=604, state="open", body="Phase 4", title="Payments"),
        ],
    )


def test_github_issue_session_closes_issue_and_marks_tasks(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()], issues=[Issue(number=42, state="open")])
    engine, store = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1",
        type=SessionType.GITHUB_ISSUE,
        issue_number=42,
        pr_number=77,
        touched_tasks=["T001"],
    )
    tasks_path = store.tasks_path(session.session_id)
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text("- [ ] T001 Fix login\n- [ ] T002 Add test\n", encoding="utf-8")

    result = engine.finalize(session)
    payload = result.to_dict()

    assert result.ok
    assert payload["status"] == "success"
    assert payload["pr_merged"] is True
    assert payload["issue"] == {
        "number": 42,
        "closed": True,
        "comment": "Resolved via PR #77",
        "already_closed": False,
    }
    assert payload["tasks"]["total"] == 2
    assert payload["tasks"]["completed"] == 1
    assert payload["ready_for_wrap"] is True
    assert gateway.issues[42].is_closed
    assert gateway.comments[42] == ["Resolved via PR #77"]
    assert tasks_path.read_text(encoding="utf-8").startswith("- [x] T001")


def test_unmerged_pr_blocks_every_mutation(tmp_path: Path) -> None:
    open_pr = PullRequest(number=77, state="open", merged=False, draft=False)
    gateway = FakeGateway(prs=[open_pr], issues=[Issue(number=42, state="open")])
    engine, _ = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1", type=SessionType.GITHUB_ISSUE, issue_number=42, pr_number=77
    )

    result = engine.finalize(session)

    assert result.to_dict() == {
        "status": "error",
        "error": "PR not merged",
        "pr": {"number": 77, "state": "open", "merged": False},
        "message": "Merge PR #77 first, then retry finalize",
        "session_type": "github_issue",
    }
    assert gateway.calls == [("get_pr", 77)]
    assert gateway.synced == []


def test_missing_pr_number_falls_back_to_branch_lookup(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()], issues=[Issue(number=42, state="open")])
    engine, _ = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1", type=SessionType.GITHUB_ISSUE, issue_number=42
    )

    result = engine.finalize(session)

    assert result.ok
    assert ("find_pr_for_branch", "feature/session") in gateway.calls


def test_no_pr_for_branch_is_reported(tmp_path: Path) -> None:
    gateway = FakeGateway(issues=[Issue(number=42, state="open")])
    engine, _ = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1",
        type=SessionType.GITHUB_ISSUE,
        issue_number=42,
        branch="feature/orphan",
    )

    result = engine.finalize(session)

    assert result.error == "No PR found for current branch"
    assert result.resource == "branch:feature/orphan"
    assert gateway.mutations == []


def test_unknown_pr_number_is_reported(tmp_path: Path) -> None:
    gateway = FakeGateway(issues=[Issue(number=42, state="open")])
    engine, _ = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1", type=SessionType.GITHUB_ISSUE, issue_number=42, pr_number=5
    )

    payload = engine.finalize(session).to_dict()

    assert payload["error"] == "PR not found"
    assert payload["resource"] == "pr#5"


def test_already_closed_issue_is_not_touched(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()], issues=[Issue(number=42, state="closed")])
    engine, _ = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1", type=SessionType.GITHUB_ISSUE, issue_number=42, pr_number=77
    )

    result = engine.finalize(session)

    assert result.ok
    assert result.issue is not None and result.issue.already_closed
    assert gateway.mutations == []


def test_missing_issue_aborts_with_resource(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()])
    engine, _ = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1", type=SessionType.GITHUB_ISSUE, issue_number=42, pr_number=77
    )

    payload = engine.finalize(session).to_dict()

    assert payload["status"] == "error"
    assert payload["error"] == "Issue not found"
    assert payload["resource"] == "issue#42"
    assert payload["pr"]["merged"] is True


def test_permission_denied_is_reported(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()], issues=[Issue(number=42, state="open")])
    gateway.permission_denied_on.add(42)
    engine, _ = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1", type=SessionType.GITHUB_ISSUE, issue_number=42, pr_number=77
    )

    result = engine.finalize(session)

    assert result.error == "Permission denied"
    assert "403" in (result.message or "")
    assert not gateway.issues[42].is_closed


def test_speckit_phase_in_progress_keeps_pr_draft(tmp_path: Path) -> None:
    gateway = _speckit_gateway()
    engine, _ = _engine(tmp_path, gateway)
    tasks_path = _write_spec_tasks(tmp_path)

    result = engine.finalize(_speckit_session())
    payload = result.to_dict()

    assert result.ok
    assert payload["session_type"] == "speckit"
    assert payload["phase_issue"]["closed"] is True
    assert payload["phase_issue"]["comment"] == "✅ Phase complete via PR #77. All tasks done."
    assert payload["parent_issue"] == {
        "number": 600,
        "updated": True,
        "progress": "4/6 phases complete",
        "checklist_updated": True,
    }
    assert payload["pr"] == {
        "number": 77,
        "description_updated": True,
        "still_draft": True,
        "reason": "Multi-phase feature in progress (4/6 phases complete)",
    }
    assert payload["tasks"]["completed"] == 3
    assert payload["synced_to_projects"] is True
    assert gateway.issues[600].body == PARENT_BODY.replace(
        "- [ ] Phase 4: Payments (#604)", "- [x] Phase 4: Payments (#604)"
    )
    assert gateway.comments[600] == [
        "**Progress Update**: Phase #604 complete via PR #77 (4/6 phases complete)"
    ]
    assert PHASE_NOTE_MARKER.format(phase=604) in gateway.prs[77].body
    assert gateway.prs[77].draft
    assert gateway.synced == [(tasks_path, "001-checkout")]


def test_speckit_rerun_is_idempotent(tmp_path: Path) -> None:
    gateway = _speckit_gateway()
    engine, _ = _engine(tmp_path, gateway)
    tasks_path = _write_spec_tasks(tmp_path)
    session = _speckit_session()

    first = engine.finalize(session)
    mutations_after_first = list(gateway.mutations)
    ledger_after_first = tasks_path.read_bytes()
    second = engine.finalize(session)

    assert first.ok and second.ok
    assert gateway.mutations == mutations_after_first
    assert tasks_path.read_bytes() == ledger_after_first
    assert second.issue is not None and second.issue.already_closed
    assert second.parent is not None and not second.parent.updated
    assert second.parent.progress == "4/6 phases complete"
    assert second.tasks is not None and second.tasks.marked == 0
    assert len(gateway.comments[600]) == 1


def test_speckit_last_phase_promotes_draft_pr(tmp_path: Path) -> None:
    body = PARENT_BODY.replace("- [ ]", "- [x]").replace(
        "- [x] Phase 6: Polish (#606)", "- [ ] Phase 6: Polish (#606)"
    )
    gateway = FakeGateway(
        prs=[_merged_pr(draft=True)],
        issues=[
            Issue(number=600, state="open", body=body),
            Issue(number=606, state="open"),
        ],
    )
    engine, _ = _engine(tmp_path, gateway)
    _write_spec_tasks(tmp_path)

    result = engine.finalize(_speckit_session(issue_number=606))

    assert result.ok
    assert result.parent is not None and result.parent.progress == "6/6 phases complete"
    assert result.pr_outcome is not None
    assert result.pr_outcome.promoted
    assert not result.pr_outcome.still_draft
    assert ("mark_pr_ready", 77) in gateway.mutations
    assert ("update_pr_body", 77) not in gateway.mutations


def test_parent_conflict_degrades_to_warning(tmp_path: Path) -> None:
    gateway = _speckit_gateway()
    gateway.conflict_on.add(600)
    engine, _ = _engine(tmp_path, gateway)
    _write_spec_tasks(tmp_path)

    result = engine.finalize(_speckit_session())

    assert result.ok
    assert result.parent is not None
    assert not result.parent.checklist_updated
    assert result.parent.progress == "3/6 phases complete"
    assert any("checklist not updated" in warning for warning in result.warnings)
    assert 600 not in gateway.comments
    assert gateway.issues[604].is_closed
    assert result.tasks is not None and result.tasks.completed == 3


def test_parent_without_phase_line_warns(tmp_path: Path) -> None:
    gateway = _speckit_gateway(parent_body="No checklist here.\n")
    engine, _ = _engine(tmp_path, gateway)
    _write_spec_tasks(tmp_path)

    result = engine.finalize(_speckit_session())

    assert result.ok
    assert result.parent is not None and not result.parent.updated
    assert any("#604" in warning for warning in result.warnings)


def test_board_sync_failure_is_a_warning(tmp_path: Path) -> None:
    gateway = _speckit_gateway()
    gateway.sync_error = "sync-task-status.sh exited 1"
    engine, _ = _engine(tmp_path, gateway)
    _write_spec_tasks(tmp_path)

    payload = engine.finalize(_speckit_session()).to_dict()

    assert payload["status"] == "success"
    assert payload["synced_to_projects"] is False
    assert payload["warnings"] == ["Project board not synced: sync-task-status.sh exited 1"]


def test_misconfigured_speckit_session_makes_no_calls(tmp_path: Path) -> None:
    gateway = _speckit_gateway()
    engine, _ = _engine(tmp_path, gateway)

    result = engine.finalize(_speckit_session(parent_issue=None))

    assert result.error == "Session misconfigured"
    assert "parent_issue" in (result.message or "")
    assert gateway.calls == []


def test_malformed_ledger_aborts_before_mutations(tmp_path: Path) -> None:
    gateway = _speckit_gateway()
    engine, _ = _engine(tmp_path, gateway)
    tasks_path = _write_spec_tasks(tmp_path, SPEC_TASKS + "- [?] T013 Broken marker\n")

    payload = engine.finalize(_speckit_session()).to_dict()

    assert payload["error"] == "Malformed ledger"
    assert payload["resource"] == str(tasks_path)
    assert gateway.mutations == []


def test_unstructured_session_marks_only_touched_tasks(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()])
    engine, store = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-5",
        type=SessionType.UNSTRUCTURED,
        pr_number=77,
        touched_tasks=["T002"],
    )
    tasks_path = store.tasks_path(session.session_id)
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text("- [ ] T001 a\n- [ ] T002 b\n- [ ] T003 c\n", encoding="utf-8")

    result = engine.finalize(session)

    assert result.ok
    assert tasks_path.read_text(encoding="utf-8") == "- [ ] T001 a\n- [x] T002 b\n- [ ] T003 c\n"
    assert result.tasks is not None and result.tasks.marked == 1
    assert "issue" not in result.to_dict()
    assert gateway.mutations == []


@pytest.mark.parametrize("session_type", list(SessionType))
def test_every_session_type_has_a_handler(session_type: SessionType) -> None:
    assert session_type in FinalizeEngine._HANDLERS


def test_github_issue_all_tasks_done_is_ready_for_wrap(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr(664)], issues=[Issue(number=663, state="open")])
    engine, store = _engine(tmp_path, gateway)
    task_ids = [f"T00{index}" for index in range(1, 8)]
    session = Session(
        session_id="2025-10-03-1",
        type=SessionType.GITHUB_ISSUE,
        issue_number=663,
        pr_number=664,
        touched_tasks=task_ids,
    )
    tasks_path = store.tasks_path(session.session_id)
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text("".join(f"- [ ] {task_id} step\n" for task_id in task_ids), encoding="utf-8")

    payload = engine.finalize(session).to_dict()

    assert payload["status"] == "success"
    assert payload["issue"]["number"] == 663
    assert payload["issue"]["closed"] is True
    assert payload["issue"]["comment"] == "Resolved via PR #664"
    assert payload["tasks"]["total"] == 7
    assert payload["tasks"]["completed"] == 7
    assert payload["ready_for_wrap"] is True
    assert "- [ ]" not in tasks_path.read_text(encoding="utf-8")


def test_github_issue_rerun_changes_nothing(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()], issues=[Issue(number=42, state="open")])
    engine, store = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1",
        type=SessionType.GITHUB_ISSUE,
        issue_number=42,
        pr_number=77,
        touched_tasks=["T001"],
    )
    tasks_path = store.tasks_path(session.session_id)
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text("- [ ] T001 Fix login\n- [ ] T002 Add test\n", encoding="utf-8")

    first = engine.finalize(session)
    mutations_after_first = list(gateway.mutations)
    ledger_after_first = tasks_path.read_bytes()
    second = engine.finalize(session)

    assert first.ok and second.ok
    assert second.tasks is not None and first.tasks is not None
    assert (second.tasks.total, second.tasks.completed) == (first.tasks.total, first.tasks.completed)
    assert second.tasks.marked == 0
    assert second.issue is not None and second.issue.already_closed
    assert tasks_path.read_bytes() == ledger_after_first
    assert gateway.mutations == mutations_after_first
    assert gateway.comments[42] == ["Resolved via PR #77"]


def test_speckit_unmerged_pr_blocks_every_mutation(tmp_path: Path) -> None:
    open_pr = PullRequest(number=661, state="open", merged=False, draft=True)
    gateway = FakeGateway(
        prs=[open_pr],
        issues=[
            Issue(number=600, state="open", body=PARENT_BODY),
            Issue(number=604, state="open"),
        ],
    )
    engine, _ = _engine(tmp_path, gateway)
    tasks_path = _write_spec_tasks(tmp_path)

    payload = engine.finalize(_speckit_session(pr_number=661)).to_dict()

    assert payload["status"] == "error"
    assert payload["error"] == "PR not merged"
    assert payload["pr"] == {"number": 661, "state": "open", "merged": False}
    assert payload["session_type"] == "speckit"
    assert gateway.calls == [("get_pr", 661)]
    assert gateway.issues[600].body == PARENT_BODY
    assert tasks_path.read_text(encoding="utf-8") == SPEC_TASKS


def test_dependency_reference_does_not_block_phase_tick(tmp_path: Path) -> None:
    parent_body = "- [x] Phase 1 (#601)\n- [ ] Phase 2 (#602)\n- [ ] Phase 3 (#603), depends on #602\n"
    gateway = FakeGateway(
        prs=[_merged_pr()],
        issues=[
            Issue(number=600, state="open", body=parent_body),
            Issue(number=602, state="open"),
        ],
    )
    engine, _ = _engine(tmp_path, gateway)
    _write_spec_tasks(tmp_path)

    result = engine.finalize(_speckit_session(issue_number=602))

    assert result.ok
    assert result.parent is not None and result.parent.checklist_updated
    assert result.parent.progress == "2/3 phases complete"
    assert gateway.issues[600].body == (
        "- [x] Phase 1 (#601)\n- [x] Phase 2 (#602)\n- [ ] Phase 3 (#603), depends on #602\n"
    )


def test_progress_comment_permission_denied_is_fatal(tmp_path: Path) -> None:
    gateway = _speckit_gateway()
    gateway.permission_denied_calls.add(("comment_issue", 600))
    engine, _ = _engine(tmp_path, gateway)
    _write_spec_tasks(tmp_path)

    result = engine.finalize(_speckit_session())

    assert result.error == "Permission denied"
    assert "403" in (result.message or "")
    assert 600 not in gateway.comments
    assert gateway.synced == []


def test_invalid_utf8_ledger_aborts_before_mutations(tmp_path: Path) -> None:
    gateway = _speckit_gateway()
    engine, _ = _engine(tmp_path, gateway)
    tasks_path = _write_spec_tasks(tmp_path)
    tasks_path.write_bytes(SPEC_TASKS.encode("utf-8") + b"- [ ] T013 Caf\xe9 receipts\n")

    payload = engine.finalize(_speckit_session()).to_dict()

    assert payload["status"] == "error"
    assert payload["error"] == "Malformed ledger"
    assert "Invalid UTF-8 on line 7" in payload["message"]
    assert payload["resource"] == str(tasks_path)
    assert gateway.mutations == []


def test_ledger_write_failure_is_reported(monkeypatch, tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()], issues=[Issue(number=42, state="open")])
    engine, store = _engine(tmp_path, gateway)
    session = Session(
        session_id="2025-10-03-1",
        type=SessionType.GITHUB_ISSUE,
        issue_number=42,
        pr_number=77,
        touched_tasks=["T001"],
    )
    tasks_path = store.tasks_path(session.session_id)
    tasks_path.parent.mkdir(parents=True)
    tasks_path.write_text("- [ ] T001 Fix login\n", encoding="utf-8")

    def _read_only(self, data):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "write_bytes", _read_only)

    payload = engine.finalize(session).to_dict()

    assert payload["status"] == "error"
    assert payload["error"] == "Ledger I/O error"
    assert payload["resource"] == str(tasks_path)
    assert tasks_path.read_text(encoding="utf-8") == "- [ ] T001 Fix login\n"


def test_handler_rejects_session_missing_issue_number(tmp_path: Path) -> None:
    gateway = FakeGateway(prs=[_merged_pr()])
    engine, _ = _engine(tmp_path, gateway)
    session = Session.model_construct(
        session_id="2025-10-03-1",
        type=SessionType.GITHUB_ISSUE,
        issue_number=None,
        pr_number=77,
        touched_tasks=[],
    )

    with pytest.raises(SessionIntegrityError):
        engine._finalize_github_issue(session, _merged_pr(), TaskLedger(tmp_path / "tasks.md"))

    assert gateway.mutations == []
