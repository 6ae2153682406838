from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, create_autospec
from uuid import uuid4

import pytest

from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.repositories.files import FileRepository
from knowledge_bot.services.base import ForbiddenError, NotFoundError, ValidationError
from knowledge_bot.services.bots import BotService, bot_folder_path, delete_blocked_message
from knowledge_bot.services.widget import decode_widget_token

from .conftest import make_bot


@pytest.fixture
def service() -> BotService:
    svc = BotService(Mock())
    svc.bots = create_autospec(BotRepository, instance=True)
    svc.files = create_autospec(FileRepository, instance=True)
    return svc


def test_delete_blocked_message_lists_three_files() -> None:
    message = delete_blocked_message("Docs", ["a.pdf", "b.pdf", "c.pdf", "d.pdf", "e.pdf"])
    assert message.startswith('Cannot delete bot "Docs" because its folder contains 5 file(s): a.pdf, b.pdf, c.pdf')
    assert "and 2 more" in message


def test_delete_blocked_message_short_list() -> None:
    message = delete_blocked_message("Docs", ["a.pdf"])
    assert "1 file(s): a.pdf." in message
    assert "more" not in message


@pytest.mark.asyncio
async def test_get_owned_missing(service: BotService) -> None:
    service.bots.get_by_id.return_value = None
    with pytest.raises(NotFoundError):
        await service.get_owned(uuid4(), uuid4())


@pytest.mark.asyncio
async def test_get_owned_foreign_company(service: BotService) -> None:
    service.bots.get_by_id.return_value = make_bot()
    with pytest.raises(ForbiddenError) as exc:
        await service.get_owned(uuid4(), uuid4(), action="update")
    assert exc.value.message == "You can only update bots from your company"


@pytest.mark.asyncio
async def test_create_ignores_client_company_and_issues_token(service: BotService) -> None:
    company_id, other_company = uuid4(), uuid4()
    created = SimpleNamespace(id=uuid4())
    service.bots.create.return_value = created
    service.bots.update.return_value = created

    await service.create(company_id, {"name": "Helper", "company": other_company, "description": None})

    create_kwargs = service.bots.create.await_args.kwargs
    assert create_kwargs["company_id"] == company_id
    assert create_kwargs["name"] == "Helper"
    assert "company" not in create_kwargs
    assert "description" not in create_kwargs

    update_kwargs = service.bots.update.await_args.kwargs
    claims = decode_widget_token(update_kwargs["jwt_token"])
    assert claims["company_id"] == str(company_id)
    assert claims["bot_id"] == str(created.id)
    assert update_kwargs["folder_path"] == bot_folder_path(created.id)
    assert update_kwargs["jwt_token"] in update_kwargs["instructions"]


@pytest.mark.asyncio
async def test_update_cannot_move_bot_to_other_company(service: BotService) -> None:
    company_id = uuid4()
    bot = make_bot(company_id, jwt_token="existing")
    service.bots.get_by_id.return_value = bot
    service.bots.update.return_value = bot

    await service.update(bot.id, company_id, {"name": "Renamed", "company": uuid4()})

    kwargs = service.bots.update.await_args.kwargs
    assert kwargs == {"name": "Renamed"}


@pytest.mark.asyncio
async def test_delete_blocked_while_files_remain(service: BotService) -> None:
    company_id = uuid4()
    bot = make_bot(company_id, name="Docs")
    service.bots.get_by_id.return_value = bot
    service.files.list_active_for_bot.return_value = [SimpleNamespace(name=f"f{i}.pdf") for i in range(4)]

    with pytest.raises(ValidationError) as exc:
        await service.delete(bot.id, company_id)

    assert "contains 4 file(s)" in exc.value.message
    service.bots.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_empty_bot(service: BotService) -> None:
    company_id = uuid4()
    bot = make_bot(company_id)
    service.bots.get_by_id.return_value = bot
    service.files.list_active_for_bot.return_value = []

    assert await service.delete(bot.id, company_id) is bot
    service.bots.delete.assert_awaited_once_with(bot.id)


@pytest.mark.asyncio
async def test_create_keeps_client_bot_id(service: BotService) -> None:
    company_id = uuid4()
    created = SimpleNamespace(id=uuid4())
    service.bots.create.return_value = created
    service.bots.update.return_value = created

    await service.create(company_id, {"name": "Helper", "bot_id": "helper-01"})

    args, kwargs = service.bots.update.await_args
    assert args == (created.id,)
    assert kwargs["bot_id"] == "helper-01"


@pytest.mark.asyncio
async def test_create_defaults_bot_id_to_row_id(service: BotService) -> None:
    created = SimpleNamespace(id=uuid4())
    service.bots.create.return_value = created
    service.bots.update.return_value = created

    await service.create(uuid4(), {"name": "Helper"})

    assert service.bots.update.await_args.kwargs["bot_id"] == str(created.id)


@pytest.mark.asyncio
async def test_update_accepts_bot_id_column(service: BotService) -> None:
    company_id = uuid4()
    bot = make_bot(company_id, jwt_token="existing")
    service.bots.get_by_id.return_value = bot
    service.bots.update.return_value = bot

    await service.update(bot.id, company_id, {"bot_id": "renamed-bot"})

    service.bots.update.assert_awaited_once_with(bot.id, bot_id="renamed-bot")


@pytest.mark.asyncio
async def test_repository_update_sets_bot_id_column() -> None:
    session = AsyncMock()
    session.add = Mock()
    repo = BotRepository(session)

    await repo.update(uuid4(), bot_id="custom", folder_path="/bot-x")

    statement = session.execute.await_args_list[0].args[0]
    params = statement.compile().params
    assert params["bot_id"] == "custom"
    assert params["folder_path"] == "/bot-x"
    session.commit.assert_awaited_once()
