# tests/test_project_service.py

import pytest

from tracker.cache.layer import PROJECTS
from tracker.core.exceptions import BadRequestError, ResourceNotFoundError, UnauthorizedError
from tracker.models import ProjectStatus
from tracker.notifications.broker import project_destination
from tracker.schemas import ProjectRequest, TaskCreate
from tracker.services.project_service import user_projects_key


@pytest.fixture()
async def people(make_user):
    return {
        "owner": await make_user("owner@x.io", "Olivia Owner"),
        "member": await make_user("member@x.io", "Max Member"),
        "outsider": await make_user("outsider@x.io", "Oscar Outsider"),
    }


@pytest.fixture()
async def project(project_service, people):
    return await project_service.create_project(
        ProjectRequest(name="Alpha", description="first", member_ids=[people["member"].id]),
        "owner@x.io",
    )


@pytest.mark.asyncio
async def test_create_project_sets_owner_members_and_defaults(project, people, broker) -> None:
    assert project.owner_email == "owner@x.io"
    assert project.owner_name == "Olivia Owner"
    assert [m.email for m in project.members] == ["member@x.io"]
    assert project.status == ProjectStatus.ACTIVE
    assert project.task_count == 0

    [event] = broker.to(project_destination(project.id))
    assert event["type"] == "PROJECT"
    assert event["action"] == "CREATE"
    assert event["userId"] == "owner@x.io"
    assert event["payload"]["id"] == project.id


@pytest.mark.asyncio
async def test_unknown_member_ids_are_ignored(project_service, people) -> None:
    response = await project_service.create_project(
        ProjectRequest(name="Beta", member_ids=[people["member"].id, 999]), "owner@x.io"
    )
    assert [m.id for m in response.members] == [people["member"].id]


@pytest.mark.asyncio
async def test_create_project_for_unknown_actor(project_service) -> None:
    with pytest.raises(ResourceNotFoundError):
        await project_service.create_project(ProjectRequest(name="Ghost"), "ghost@x.io")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("email", "allowed"),
    [("owner@x.io", True), ("member@x.io", True), ("outsider@x.io", False)],
)
async def test_read_access_follows_membership(project_service, project, email, allowed) -> None:
    if allowed:
        response = await project_service.get_project_by_id(project.id, email)
        assert response.id == project.id
    else:
        with pytest.raises(UnauthorizedError):
            await project_service.get_project_by_id(project.id, email)


@pytest.mark.asyncio
async def test_cached_project_still_checks_access(project_service, project, cache) -> None:
    await project_service.get_project_by_id(project.id, "owner@x.io")
    assert await cache.get(PROJECTS, project.id) is not None

    with pytest.raises(UnauthorizedError):
        await project_service.get_project_by_id(project.id, "outsider@x.io")


@pytest.mark.asyncio
async def test_missing_project_is_not_found(project_service, people) -> None:
    with pytest.raises(ResourceNotFoundError):
        await project_service.get_project_by_id(404, "owner@x.io")


@pytest.mark.asyncio
@pytest.mark.parametrize("email", ["member@x.io", "outsider@x.io"])
async def test_only_owner_updates_or_deletes(project_service, project, email) -> None:
    with pytest.raises(UnauthorizedError):
        await project_service.update_project(project.id, ProjectRequest(name="Hijacked"), email)
    with pytest.raises(UnauthorizedError):
        await project_service.delete_project(project.id, email)

    still_there = await project_service.get_project_by_id(project.id, "owner@x.io")
    assert still_there.name == "Alpha"


@pytest.mark.asyncio
async def test_update_is_visible_to_the_next_read(project_service, project, people, broker) -> None:
    await project_service.get_project_by_id(project.id, "owner@x.io")
    broker.clear()

    updated = await project_service.update_project(
        project.id,
        ProjectRequest(name="Alpha v2", description="second", member_ids=[], status=ProjectStatus.COMPLETED),
        "owner@x.io",
    )
    read_back = await project_service.get_project_by_id(project.id, "owner@x.io")

    assert read_back.name == "Alpha v2"
    assert read_back.description == "second"
    assert read_back.status == ProjectStatus.COMPLETED
    assert read_back.members == []
    assert read_back == updated

    [event] = broker.to(project_destination(project.id))
    assert event["action"] == "UPDATE"


@pytest.mark.asyncio
async def test_removed_member_loses_access_after_update(project_service, project) -> None:
    await project_service.get_project_by_id(project.id, "member@x.io")
    await project_service.update_project(project.id, ProjectRequest(name="Alpha", member_ids=[]), "owner@x.io")

    with pytest.raises(UnauthorizedError):
        await project_service.get_project_by_id(project.id, "member@x.io")


@pytest.mark.asyncio
async def test_user_project_list_follows_membership_changes(project_service, project, people) -> None:
    assert [p.id for p in await project_service.get_user_projects("member@x.io")] == [project.id]
    assert await project_service.get_user_projects("outsider@x.io") == []

    await project_service.update_project(
        project.id, ProjectRequest(name="Alpha", member_ids=[people["outsider"].id]), "owner@x.io"
    )

    assert await project_service.get_user_projects("member@x.io") == []
    assert [p.id for p in await project_service.get_user_projects("outsider@x.io")] == [project.id]


@pytest.mark.asyncio
async def test_delete_emits_event_before_row_is_removed(project_service, project, broker, cache) -> None:
    order = []
    real_delete = project_service.projects.delete
    real_send = broker.send

    async def recording_delete(entity):
        order.append("delete")
        await real_delete(entity)

    def recording_send(destination, message):
        order.append("send")
        return real_send(destination, message)

    project_service.projects.delete = recording_delete
    broker.send = recording_send
    broker.clear()

    await project_service.delete_project(project.id, "owner@x.io")

    assert order == ["send", "delete"]
    [event] = broker.to(project_destination(project.id))
    assert event["action"] == "DELETE"
    assert event["payload"]["id"] == project.id
    assert event["payload"]["name"] == "Alpha"

    assert await cache.get(PROJECTS, project.id) is None
    assert await cache.get(PROJECTS, user_projects_key("member@x.io")) is None
    with pytest.raises(ResourceNotFoundError):
        await project_service.get_project_by_id(project.id, "owner@x.io")


@pytest.mark.asyncio
async def test_delete_removes_the_projects_tasks(project_service, task_service, project) -> None:
    task = await task_service.create_task(TaskCreate(title="Orphan", project_id=project.id), "owner@x.io")
    await project_service.delete_project(project.id, "owner@x.io")

    with pytest.raises(ResourceNotFoundError):
        await task_service.get_task_by_id(task.id)


@pytest.mark.asyncio
async def test_task_count_is_reported(project_service, task_service, project) -> None:
    await task_service.create_task(TaskCreate(title="One", project_id=project.id), "owner@x.io")
    await task_service.create_task(TaskCreate(title="Two", project_id=project.id), "owner@x.io")

    response = await project_service.get_project_by_id(project.id, "member@x.io")
    assert response.task_count == 2
    [listed] = await project_service.get_user_projects("owner@x.io")
    assert listed.task_count == 2


@pytest.mark.asyncio
async def test_pagination_over_25_projects(project_service, people) -> None:
    for i in range(25):
        await project_service.create_project(ProjectRequest(name=f"Project {i:02d}"), "owner@x.io")

    page = await project_service.get_user_projects_paginated("owner@x.io", page=0, size=10)

    assert page.total_elements == 25
    assert page.total_pages == 3
    assert page.first is True
    assert page.last is False
    assert len(page.content) == 10

    last = await project_service.get_user_projects_paginated("owner@x.io", page=2, size=10)
    assert len(last.content) == 5
    assert last.last is True


@pytest.mark.asyncio
async def test_search_filters_by_keyword_and_status(project_service, project, people) -> None:
    await project_service.create_project(
        ProjectRequest(name="Website redesign", status=ProjectStatus.ARCHIVED), "owner@x.io"
    )

    by_name = await project_service.get_user_projects_paginated("owner@x.io", search="WEBSITE")
    assert [p.name for p in by_name.content] == ["Website redesign"]

    active = await project_service.get_user_projects_paginated("owner@x.io", status=ProjectStatus.ACTIVE)
    assert [p.name for p in active.content] == ["Alpha"]

    as_member = await project_service.get_user_projects_paginated("member@x.io")
    assert [p.name for p in as_member.content] == ["Alpha"]


@pytest.mark.asyncio
async def test_search_sorts_by_name_ascending(project_service, people) -> None:
    for name in ("Charlie", "Alpha", "Bravo"):
        await project_service.create_project(ProjectRequest(name=name), "owner@x.io")

    page = await project_service.get_user_projects_paginated("owner@x.io", sort_by="name", sort_dir="asc")
    assert [p.name for p in page.content] == ["Alpha", "Bravo", "Charlie"]


@pytest.mark.asyncio
async def test_search_rejects_unknown_sort_field(project_service, people) -> None:
    with pytest.raises(BadRequestError):
        await project_service.get_user_projects_paginated("owner@x.io", sort_by="password")
