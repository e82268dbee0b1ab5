"""
ClimbApp Backend — Query Service Unit Tests
===========================================

What:  Tests for the photo → climbing route lookup.
How:   Product search results are built by hand; the search itself and the
       database are mocked.

What we test:
    ✅ Best result above the threshold resolves to route + site
    ✅ Score exactly at the threshold is not a match
    ✅ Missing label or unknown route answers no_match
    ✅ Invalid images are rejected before any search
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from climbapp.exceptions import ValidationError
from climbapp.schemas.common import ImageData
from climbapp.schemas.query import QueryRequest, QueryResultType
from climbapp.schemas.target import Target, TargetSearchResultEntry, TargetSearchResults
from climbapp.services.query_service import QueryService, best_match


def search_results(*hits) -> TargetSearchResults:
    """hits: (score, labels) pairs."""
    return TargetSearchResults(
        results=[
            TargetSearchResultEntry(
                score=score,
                target=Target(id=f"product-{index}", labels=labels),
            )
            for index, (score, labels) in enumerate(hits)
        ]
    )


class TestBestMatch:

    def test_highest_score_wins(self):
        results = search_results((0.86, {}), (0.97, {}), (0.90, {}))
        assert best_match(results, 0.85).target.id == "product-1"

    def test_threshold_is_exclusive(self):
        assert best_match(search_results((0.85, {})), 0.85) is None

    def test_empty_results(self):
        assert best_match(TargetSearchResults(), 0.85) is None


class TestQueryService:

    def setup_method(self):
        self.service = QueryService()

    def make_request(self, image_base64: str) -> QueryRequest:
        return QueryRequest(image=ImageData(base64=image_base64))

    def mock_site_lookup(self, mock_db_session, site):
        result = MagicMock()
        result.scalars.return_value.first.return_value = site
        mock_db_session.execute.return_value = result

    @pytest.mark.asyncio
    async def test_match(self, mock_db_session, sample_site, sample_route, sample_image_base64):
        self.mock_site_lookup(mock_db_session, sample_site)
        results = search_results(
            (0.40, {"climbing_route_id": "other"}),
            (0.93, {"climbing_route_id": sample_route.id}),
        )

        with patch("climbapp.services.query_service.image_recognition_service") as mock_recognition:
            mock_recognition.query_similar_targets = AsyncMock(return_value=results)
            response = await self.service.query(mock_db_session, self.make_request(sample_image_base64))

        assert response.result == QueryResultType.MATCH
        assert response.climbing_route.id == sample_route.id
        assert response.climbing_route.name == "Black Slab"
        assert response.climbing_route.difficulty == "6b"
        assert response.climbing_route.site.id == sample_site.id
        assert response.climbing_route.site.name == "Fontainebleau"

    @pytest.mark.asyncio
    async def test_low_score_is_no_match(self, mock_db_session, sample_image_base64):
        with patch("climbapp.services.query_service.image_recognition_service") as mock_recognition:
            mock_recognition.query_similar_targets = AsyncMock(
                return_value=search_results((0.5, {"climbing_route_id": "r"}))
            )
            response = await self.service.query(mock_db_session, self.make_request(sample_image_base64))

        assert response.result == QueryResultType.NO_MATCH
        assert response.climbing_route.id is None
        assert response.climbing_route.site.id is None
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_label_is_no_match(self, mock_db_session, sample_image_base64):
        with patch("climbapp.services.query_service.image_recognition_service") as mock_recognition:
            mock_recognition.query_similar_targets = AsyncMock(
                return_value=search_results((0.99, {"colour": "red"}))
            )
            response = await self.service.query(mock_db_session, self.make_request(sample_image_base64))

        assert response.result == QueryResultType.NO_MATCH

    @pytest.mark.asyncio
    async def test_unknown_route_is_no_match(self, mock_db_session, sample_image_base64):
        self.mock_site_lookup(mock_db_session, None)

        with patch("climbapp.services.query_service.image_recognition_service") as mock_recognition:
            mock_recognition.query_similar_targets = AsyncMock(
                return_value=search_results((0.99, {"climbing_route_id": "deleted-route"}))
            )
            response = await self.service.query(mock_db_session, self.make_request(sample_image_base64))

        assert response.result == QueryResultType.NO_MATCH

    @pytest.mark.asyncio
    async def test_invalid_image_rejected_before_search(self, mock_db_session):
        with patch("climbapp.services.query_service.image_recognition_service") as mock_recognition:
            mock_recognition.query_similar_targets = AsyncMock()
            with pytest.raises(ValidationError):
                await self.service.query(mock_db_session, self.make_request("%%%"))

        mock_recognition.query_similar_targets.assert_not_awaited()
