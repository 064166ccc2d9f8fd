"""
목록 필터 -> Clause 빌더 테스트 (DB 불필요)
"""

from datetime import date

import pytest
from pydantic import ValidationError

from app.models.schemas import RecordFilterParams
from app.services.record_filters import (
    BASE_CLAUSES,
    EMPTY_RESULT,
    Clause,
    build_clauses,
    compile_clause,
)


def _filters(**query) -> RecordFilterParams:
    return RecordFilterParams.model_validate(query)


class TestBuildClauses:
    def test_no_filters_only_visibility(self):
        assert build_clauses(_filters()) == list(BASE_CLAUSES)

    def test_coin_substring(self):
        clauses = build_clauses(_filters(coin="BT"))
        assert Clause("coin_symbol", "contains", "BT") in clauses

    def test_lowercase_coin_matches_nothing(self):
        clauses = build_clauses(_filters(coin="btc"))
        assert EMPTY_RESULT in clauses
        assert not any(c.field == "coin_symbol" for c in clauses)

    def test_date_range_and_owner(self):
        clauses = build_clauses(_filters(userId="7", dateFrom="2024-01-01", dateTo="2024-01-31"))
        assert Clause("owner_id", "eq", 7) in clauses
        assert Clause("review_date", "gte", date(2024, 1, 1)) in clauses
        assert Clause("review_date", "lte", date(2024, 1, 31)) in clauses

    def test_has_ai_review_false_is_kept(self):
        clauses = build_clauses(_filters(hasAiReview="false"))
        assert Clause("has_ai_review", "exists", False) in clauses

    def test_mine_with_viewer(self):
        clauses = build_clauses(_filters(sort="mine"), viewer_id=3)
        assert Clause("owner_id", "eq", 3) in clauses

    @pytest.mark.parametrize("sort", ["mine", "favorites"])
    def test_personal_sort_without_viewer_is_empty(self, sort):
        clauses = build_clauses(_filters(sort=sort), viewer_id=None)
        assert EMPTY_RESULT in clauses

    def test_favorites_with_viewer(self):
        clauses = build_clauses(_filters(sort="favorites"), viewer_id=5)
        assert Clause("favorited_by", "exists", 5) in clauses


class TestFilterParams:
    def test_defaults(self):
        filters = _filters()
        assert filters.page == 1
        assert filters.limit == 20
        assert filters.sort == "latest"

    def test_legacy_my_sort(self):
        assert _filters(sort="my").sort == "mine"

    def test_empty_strings_are_ignored(self):
        filters = _filters(coin="", dateFrom="", page="2")
        assert filters.coin is None
        assert filters.date_from is None
        assert filters.page == 2

    @pytest.mark.parametrize(
        "query",
        [
            {"page": "0"},
            {"limit": "0"},
            {"limit": "101"},
            {"sort": "oldest"},
            {"dateFrom": "2024/01/01"},
            {"dateTo": "2024-02-30"},
            {"dateFrom": "2024-03-01", "dateTo": "2024-02-01"},
            {"userId": "abc"},
        ],
    )
    def test_invalid_query_rejected(self, query):
        with pytest.raises(ValidationError):
            _filters(**query)


class TestCompileClause:
    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            compile_clause(Clause("coin_symbol", "regex", "B.*"))

    def test_unknown_field(self):
        with pytest.raises(ValueError):
            compile_clause(Clause("password_hash", "eq", "x"))

    def test_exists_on_plain_column_rejected(self):
        with pytest.raises(ValueError):
            compile_clause(Clause("coin_symbol", "exists", True))

    def test_empty_in_is_false(self):
        assert str(compile_clause(EMPTY_RESULT)) == "false"

    def test_values_are_bound_parameters(self):
        compiled = compile_clause(Clause("coin_symbol", "contains", "B%'; DROP")).compile()
        assert "DROP" not in str(compiled)
        assert "ESCAPE" in str(compiled)
        assert any("DROP" in str(value) for value in compiled.params.values())
