import pytest

from grid_command_center import crud


@pytest.mark.asyncio
async def test_add_audit_log(test_session):
    log = await crud.add_audit_log(
        test_session,
        action="DER Activated",
        user="operator",
        target="DER-EV-002",
        status="success",
        description="Order ORD-1",
    )
    assert log.id is not None
    assert log.log_id.startswith("LOG-")
    assert log.timestamp is not None


@pytest.mark.asyncio
async def test_add_audit_log_rejects_unknown_status(test_session):
    with pytest.raises(ValueError):
        await crud.add_audit_log(
            test_session, action="x", user="operator", target="t", status="maybe", description=""
        )


@pytest.mark.asyncio
async def test_list_audit_logs_newest_first_and_filtered(test_session):
    for n in range(3):
        await crud.add_audit_log(
            test_session,
            action=f"Action {n}",
            user="operator",
            target="F-1234" if n != 1 else "F-5678",
            status="info",
            description=str(n),
        )

    logs = await crud.list_audit_logs(test_session)
    assert [log.action for log in logs] == ["Action 2", "Action 1", "Action 0"]

    logs = await crud.list_audit_logs(test_session, target="F-1234")
    assert [log.description for log in logs] == ["2", "0"]

    logs = await crud.list_audit_logs(test_session, limit=1)
    assert len(logs) == 1

