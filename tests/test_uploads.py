from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, create_autospec
from uuid import uuid4

import pytest

from knowledge_bot.repositories.bots import BotRepository
from knowledge_bot.repositories.files import FileRepository
from knowledge_bot.services.base import ForbiddenError, NotFoundError, ValidationError
from knowledge_bot.services.storage import ObjectStorage
from knowledge_bot.services.uploads import IncomingFile, UploadService, bot_id_from_folder, upload_message

from .conftest import make_bot, make_company, make_user


@pytest.fixture
def service() -> UploadService:
    storage = create_autospec(ObjectStorage, instance=True)
    storage.put_object.side_effect = lambda key, body, content_type=None: f"https://files.test/{key}"
    # MagicMock supports `async with session.begin_nested()`
    svc = UploadService(MagicMock(), storage=storage)
    svc.files = create_autospec(FileRepository, instance=True)
    svc.files.create.side_effect = lambda **values: SimpleNamespace(id=uuid4(), **values)
    svc.bots = create_autospec(BotRepository, instance=True)
    return svc


def test_bot_id_from_folder() -> None:
    bot_id = uuid4()
    assert bot_id_from_folder(f"/bot-{bot_id}") == bot_id
    assert bot_id_from_folder("/shared") is None
    assert bot_id_from_folder(None) is None
    assert bot_id_from_folder(f"/bot-{bot_id}/nested") is None


def test_upload_message_pluralisation() -> None:
    single = upload_message(1)
    assert single["message"].startswith("✅ 1 file uploaded successfully!")
    assert "has been processed and is ready" in single["message"]
    assert single["notification"]["title"] == "Upload Complete"

    many = upload_message(3)
    assert many["message"].startswith("✅ 3 files uploaded successfully!")
    assert "have been processed and are ready" in many["message"]


def test_incoming_file_size() -> None:
    assert IncomingFile(name="a.txt", data=b"hello").size == 5


@pytest.mark.asyncio
async def test_resolve_bot_from_folder(service: UploadService) -> None:
    company_id = uuid4()
    bot = make_bot(company_id)
    service.bots.get_by_id.return_value = bot
    assert await service.resolve_bot(company_id, None, bot.folder_path) is bot


@pytest.mark.asyncio
async def test_resolve_bot_rejects_foreign_bot(service: UploadService) -> None:
    service.bots.get_by_id.return_value = make_bot()
    with pytest.raises(ForbiddenError) as exc:
        await service.resolve_bot(uuid4(), uuid4(), None)
    assert exc.value.message == "You can only use bots from your company"


@pytest.mark.asyncio
async def test_resolve_bot_missing_explicit_id(service: UploadService) -> None:
    service.bots.get_by_id.return_value = None
    with pytest.raises(NotFoundError):
        await service.resolve_bot(uuid4(), uuid4(), None)


@pytest.mark.asyncio
async def test_resolve_bot_missing_folder_bot_is_ignored(service: UploadService) -> None:
    service.bots.get_by_id.return_value = None
    assert await service.resolve_bot(uuid4(), None, f"/bot-{uuid4()}") is None


@pytest.mark.asyncio
async def test_upload_requires_files(service: UploadService) -> None:
    with pytest.raises(ValidationError) as exc:
        await service.upload(make_user(make_company()), [])
    assert exc.value.message == "No files were uploaded"


@pytest.mark.asyncio
async def test_replace_needs_single_file(service: UploadService) -> None:
    files = [IncomingFile(name="a.pdf", data=b"1"), IncomingFile(name="b.pdf", data=b"2")]
    with pytest.raises(ValidationError):
        await service.upload(make_user(make_company()), files, replace_id=uuid4())


@pytest.mark.asyncio
async def test_get_owned_hides_foreign_file(service: UploadService) -> None:
    service.files.get_by_id.return_value = Mock(company_id=uuid4())
    with pytest.raises(NotFoundError):
        await service.get_owned(uuid4(), uuid4())


@pytest.mark.asyncio
async def test_upload_stores_blob_and_records_created_event(service: UploadService) -> None:
    company = make_company()
    bot = make_bot(company.id)
    service.bots.get_by_id.return_value = bot
    incoming = [IncomingFile(name="Guide.PDF", data=b"%PDF-1.4", mime="application/pdf")]

    result = await service.upload(make_user(company), incoming, bot_id=bot.id)

    key = service.storage.put_object.await_args.args[0]
    assert key.endswith(".pdf")
    record = result["data"][0]
    assert record.url == f"https://files.test/{key}"
    assert record.storage_key == key
    assert record.company_id == company.id
    assert record.bot_id == bot.id
    assert record.folder_path == bot.folder_path
    assert record.source_type == "manual_upload"

    event = service.files.add_event.await_args.kwargs
    assert event["event_type"] == "created"
    assert event["processing_status"] == "pending"
    assert event["batch_id"] == result["batchId"]
    service.files.commit.assert_awaited_once()
    service.storage.delete_object.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_without_company_uses_bot_company(service: UploadService) -> None:
    bot = make_bot()
    service.bots.get_by_id.return_value = bot
    incoming = [IncomingFile(name="notes.txt", data=b"hello", mime="text/plain")]

    result = await service.upload(make_user(None), incoming, folder_path=bot.folder_path)

    assert result["data"][0].company_id == bot.company_id


@pytest.mark.asyncio
async def test_upload_without_company_or_bot_is_rejected(service: UploadService) -> None:
    incoming = [IncomingFile(name="notes.txt", data=b"hello", mime="text/plain")]
    with pytest.raises(ValidationError) as exc:
        await service.upload(make_user(None), incoming)
    assert exc.value.message == "User must be associated with a company"
    service.storage.put_object.assert_not_awaited()


@pytest.mark.asyncio
async def test_unsupported_file_is_skipped_for_processing(service: UploadService) -> None:
    company = make_company()
    incoming = [IncomingFile(name="photo.png", data=b"\x89PNG", mime="image/png")]

    await service.upload(make_user(company), incoming)

    event = service.files.add_event.await_args.kwargs
    assert event["processing_status"] == "skipped"
    assert event["error_message"] == "Unsupported file type"


@pytest.mark.asyncio
async def test_replace_deletes_old_blob_and_records_updated_event(service: UploadService) -> None:
    company = make_company()
    existing = SimpleNamespace(id=uuid4(), company_id=company.id, storage_key="old.pdf")
    service.files.get_by_id.return_value = existing
    service.files.update.side_effect = lambda file_id, **values: SimpleNamespace(id=file_id, **values)
    incoming = [IncomingFile(name="v2.pdf", data=b"%PDF-1.7", mime="application/pdf")]

    result = await service.upload(make_user(company), incoming, replace_id=existing.id)

    service.storage.delete_object.assert_awaited_once_with("old.pdf")
    service.files.create.assert_not_awaited()
    assert result["data"][0].id == existing.id
    assert service.files.add_event.await_args.kwargs["event_type"] == "updated"


@pytest.mark.asyncio
async def test_delete_records_event_removes_blob_and_soft_deletes(service: UploadService) -> None:
    company_id = uuid4()
    record = SimpleNamespace(
        id=uuid4(),
        company_id=company_id,
        name="old.pdf",
        ext=".pdf",
        size=10,
        user_id=uuid4(),
        bot_id=None,
        storage_key="abc.pdf",
    )
    service.files.get_by_id.return_value = record

    assert await service.delete(record.id, company_id) is record

    event = service.files.add_event.await_args.kwargs
    assert event["event_type"] == "deleted"
    assert event["processing_status"] == "completed"
    assert event["file_document_id"] == record.id
    service.storage.delete_object.assert_awaited_once_with("abc.pdf")
    args = service.files.soft_delete.await_args.args
    assert args[0] == record.id
    service.files.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_delete_foreign_file_leaves_blob(service: UploadService) -> None:
    service.files.get_by_id.return_value = SimpleNamespace(id=uuid4(), company_id=uuid4(), storage_key="x")
    with pytest.raises(NotFoundError):
        await service.delete(uuid4(), uuid4())
    service.storage.delete_object.assert_not_awaited()
    service.files.soft_delete.assert_not_awaited()
