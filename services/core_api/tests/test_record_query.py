"""
기록 조회 엔진 테스트 (필터/정렬/페이지네이션/집계)
"""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError
from app.db.models import AIReview, Favorite, TradingNote, TradingRecord
from app.models.schemas import RecordFilterParams
from app.services.record_query import get_record, list_records

BASE_TIME = datetime(2024, 3, 1, 9, 0, 0)


@pytest.fixture
def make_record(db_session):
    """created_at을 지정해 기록을 직접 생성"""

    async def _make_record(owner, coin="BTC", review_date=date(2024, 1, 5), minutes=0, is_deleted=False):
        created_at = BASE_TIME + timedelta(minutes=minutes)
        record = TradingRecord(
            user_id=owner.id,
            review_date=review_date,
            coin_symbol=coin,
            is_deleted=is_deleted,
            created_at=created_at,
            updated_at=created_at,
        )
        db_session.add(record)
        await db_session.commit()
        return record

    return _make_record


async def _favorite(db_session, user, record):
    db_session.add(Favorite(user_id=user.id, record_id=record.id))
    await db_session.commit()


async def _list(db_session, viewer_id=None, **query):
    return await list_records(db_session, RecordFilterParams.model_validate(query), viewer_id)


@pytest.mark.asyncio
async def test_deleted_and_inactive_owner_records_hidden(db_session, make_user, make_record):
    alice = await make_user("alice")
    ghost = await make_user("ghost", is_active=False)
    visible = await make_record(alice)
    await make_record(alice, is_deleted=True)
    await make_record(ghost)

    page = await _list(db_session)
    assert page.total == 1
    assert [item.id for item in page.items] == [visible.id]


@pytest.mark.asyncio
async def test_pages_are_disjoint_and_total_ignores_limit(db_session, make_user, make_record):
    alice = await make_user("alice")
    created = [await make_record(alice, minutes=i) for i in range(5)]

    seen = []
    for page_no in (1, 2, 3):
        page = await _list(db_session, page=str(page_no), limit="2")
        assert page.total == 5
        assert page.total_pages == 3
        seen.extend(item.id for item in page.items)

    assert len(seen) == len(set(seen)) == 5
    assert set(seen) == {r.id for r in created}

    beyond = await _list(db_session, page="4", limit="2")
    assert beyond.items == []
    assert beyond.total == 5


@pytest.mark.asyncio
async def test_empty_result_has_zero_pages(db_session):
    page = await _list(db_session)
    assert page.total == 0
    assert page.total_pages == 0
    assert page.items == []


@pytest.mark.asyncio
async def test_latest_order_breaks_ties_by_id(db_session, make_user, make_record):
    alice = await make_user("alice")
    old = await make_record(alice, minutes=0)
    tie_a = await make_record(alice, minutes=10)
    tie_b = await make_record(alice, minutes=10)

    page = await _list(db_session)
    assert [item.id for item in page.items] == [tie_b.id, tie_a.id, old.id]


@pytest.mark.asyncio
async def test_popular_order(db_session, make_user, make_record):
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")

    one_fav = await make_record(alice, minutes=0)
    two_favs = await make_record(alice, minutes=1)
    no_fav_old = await make_record(alice, minutes=2)
    no_fav_new = await make_record(alice, minutes=3)

    await _favorite(db_session, bob, two_favs)
    await _favorite(db_session, carol, two_favs)
    await _favorite(db_session, bob, one_fav)

    page = await _list(db_session, sort="popular")
    assert [item.id for item in page.items] == [two_favs.id, one_fav.id, no_fav_new.id, no_fav_old.id]
    assert [item.favorite_count for item in page.items] == [2, 1, 0, 0]


@pytest.mark.asyncio
async def test_is_favorited_depends_on_viewer(db_session, make_user, make_record):
    alice = await make_user("alice")
    bob = await make_user("bob")
    liked = await make_record(alice, minutes=1)
    await make_record(alice, minutes=0)
    await _favorite(db_session, bob, liked)

    as_bob = await _list(db_session, viewer_id=bob.id)
    assert {item.id: item.is_favorited for item in as_bob.items}[liked.id] is True
    assert sum(item.is_favorited for item in as_bob.items) == 1

    anonymous = await _list(db_session)
    assert not any(item.is_favorited for item in anonymous.items)
    assert {item.id: item.favorite_count for item in anonymous.items}[liked.id] == 1


@pytest.mark.asyncio
async def test_mine_and_favorites(db_session, make_user, make_record):
    alice = await make_user("alice")
    bob = await make_user("bob")
    alice_record = await make_record(alice, minutes=0)
    bob_record = await make_record(bob, minutes=1)
    await _favorite(db_session, alice, bob_record)

    mine = await _list(db_session, viewer_id=alice.id, sort="mine")
    assert [item.id for item in mine.items] == [alice_record.id]

    favorites = await _list(db_session, viewer_id=alice.id, sort="favorites")
    assert [item.id for item in favorites.items] == [bob_record.id]

    # 조회자가 없으면 빈 결과 (오류 아님)
    for sort in ("mine", "favorites"):
        page = await _list(db_session, sort=sort)
        assert page.total == 0
        assert page.items == []


@pytest.mark.asyncio
async def test_coin_filter_substring_case_sensitive(db_session, make_user, make_record):
    alice = await make_user("alice")
    btc = await make_record(alice, coin="BTC", minutes=0)
    wbtc = await make_record(alice, coin="WBTC", minutes=1)
    await make_record(alice, coin="ETH", minutes=2)

    page = await _list(db_session, coin="BTC")
    assert {item.id for item in page.items} == {btc.id, wbtc.id}

    assert (await _list(db_session, coin="btc")).total == 0
    assert (await _list(db_session, coin="%")).total == 0


@pytest.mark.asyncio
async def test_date_range_inclusive(db_session, make_user, make_record):
    alice = await make_user("alice")
    await make_record(alice, review_date=date(2024, 1, 1))
    first = await make_record(alice, review_date=date(2024, 1, 10))
    last = await make_record(alice, review_date=date(2024, 1, 20))
    await make_record(alice, review_date=date(2024, 1, 21))

    page = await _list(db_session, dateFrom="2024-01-10", dateTo="2024-01-20")
    assert {item.id for item in page.items} == {first.id, last.id}


@pytest.mark.asyncio
async def test_user_and_ai_review_filters(db_session, make_user, make_record):
    alice = await make_user("alice")
    bob = await make_user("bob")
    reviewed = await make_record(alice, minutes=0)
    plain = await make_record(alice, minutes=1)
    bob_record = await make_record(bob, minutes=2)
    db_session.add(AIReview(record_id=reviewed.id, review_content="좋은 복기", model_name="gpt-4o"))
    await db_session.commit()

    with_review = await _list(db_session, hasAiReview="true")
    assert [item.id for item in with_review.items] == [reviewed.id]
    assert with_review.items[0].has_ai_review is True

    without_review = await _list(db_session, hasAiReview="false")
    assert {item.id for item in without_review.items} == {plain.id, bob_record.id}

    by_bob = await _list(db_session, userId=str(bob.id))
    assert [item.id for item in by_bob.items] == [bob_record.id]


@pytest.mark.asyncio
async def test_get_record_detail(db_session, make_user, make_record):
    alice = await make_user("alice")
    record = await make_record(alice)
    db_session.add_all([
        TradingNote(record_id=record.id, note_order=2, note_type="image", image_url="https://img/2.png"),
        TradingNote(record_id=record.id, note_order=1, note_type="text", content="첫 노트"),
        AIReview(record_id=record.id, review_content="리스크 관리 양호", model_name="gpt-4o"),
    ])
    await db_session.commit()

    detail = await get_record(db_session, record.id)
    assert detail.username == "alice"
    assert [note.note_order for note in detail.notes] == [1, 2]
    assert detail.has_ai_review is True
    assert detail.ai_review.review_content == "리스크 관리 양호"


@pytest.mark.asyncio
async def test_get_record_hidden(db_session, make_user, make_record):
    alice = await make_user("alice")
    deleted = await make_record(alice, is_deleted=True)
    assert await get_record(db_session, deleted.id) is None
    assert await get_record(db_session, 9999) is None


@pytest.mark.asyncio
async def test_storage_failure_on_read(db_session, monkeypatch):
    async def broken_execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "execute", broken_execute)

    with pytest.raises(StorageError):
        await _list(db_session)
    with pytest.raises(StorageError):
        await get_record(db_session, 1)
