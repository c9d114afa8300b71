"""Read-only access to remote problem catalogs (study plans)."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from algotrack.config import settings
from algotrack.models.progress_models import (
    BilingualText,
    CatalogGroup,
    CatalogProblem,
    StudyPlan,
)
from algotrack.monitoring import catalog_fetches
from algotrack.services.normalizer import normalize_difficulty

logger = logging.getLogger(__name__)

STUDY_PLAN_QUERY = """
query studyPlanV2Detail($slug: String!) {
  studyPlanV2Detail(planSlug: $slug) {
    planSubGroups {
      name
      slug
      questions {
        questionFrontendId
        title
        translatedTitle
        titleSlug
        difficulty
      }
    }
  }
}
"""


class CatalogUnavailableError(Exception):
    """The catalog could not be fetched."""

    def __init__(self, status: Optional[int], message: str):
        super().__init__(f"Catalog unavailable ({status}): {message}" if status else f"Catalog unavailable: {message}")
        self.status = status
        self.message = message


class CatalogProvider(ABC):
    """Source of catalog contents and the list of selectable catalogs."""

    @abstractmethod
    async def fetch_catalog(self, slug: str) -> List[CatalogGroup]:
        """Fetch the ordered groups of a catalog."""

    def list_catalogs(self) -> List[StudyPlan]:
        """List the selectable catalogs in display order."""
        return [
            StudyPlan(slug=slug, accent_color=color)
            for slug, color in settings.catalog.plans.items()
        ]


class LeetCodeCatalogProvider(CatalogProvider):
    """Catalog provider backed by the LeetCode study plan GraphQL API."""

    USER_AGENT = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
    )

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_url: Optional[str] = None,
        site_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_url = api_url or settings.catalog.api_url
        self.site_url = (site_url or settings.catalog.site_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.catalog.timeout,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def fetch_catalog(self, slug: str) -> List[CatalogGroup]:
        logger.info(f"Fetching study plan {slug}")
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.USER_AGENT,
            "Referer": f"{self.site_url}/studyplan/{slug}/",
            "Origin": self.site_url,
        }
        payload = {"query": STUDY_PLAN_QUERY, "variables": {"slug": slug}}
        try:
            response = await self.client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            catalog_fetches.labels(result="http_error").inc()
            raise CatalogUnavailableError(e.response.status_code, e.response.text) from e
        except httpx.HTTPError as e:
            catalog_fetches.labels(result="transport_error").inc()
            raise CatalogUnavailableError(None, str(e)) from e
        except ValueError as e:
            catalog_fetches.labels(result="malformed").inc()
            raise CatalogUnavailableError(response.status_code, f"Invalid JSON body: {e}") from e

        if not isinstance(data, dict):
            catalog_fetches.labels(result="malformed").inc()
            raise CatalogUnavailableError(response.status_code, "Unexpected response shape")
        if data.get("errors"):
            catalog_fetches.labels(result="graphql_error").inc()
            raise CatalogUnavailableError(400, f"GraphQL error: {data['errors']}")

        detail = (data.get("data") or {}).get("studyPlanV2Detail")
        if not isinstance(detail, dict):
            catalog_fetches.labels(result="malformed").inc()
            raise CatalogUnavailableError(404, f"Study plan {slug} not found")

        raw_groups = detail.get("planSubGroups") or []
        if not self._well_formed(raw_groups):
            catalog_fetches.labels(result="malformed").inc()
            raise CatalogUnavailableError(response.status_code, "Unexpected response shape")

        groups = [self._parse_group(group) for group in raw_groups]
        catalog_fetches.labels(result="ok").inc()
        logger.info(f"Fetched study plan {slug}: {len(groups)} groups")
        return groups

    @staticmethod
    def _well_formed(groups: Any) -> bool:
        """Check that groups is a list of objects whose questions are lists of objects."""
        if not isinstance(groups, list):
            return False
        for group in groups:
            if not isinstance(group, dict):
                return False
            questions = group.get("questions") or []
            if not isinstance(questions, list) or not all(isinstance(q, dict) for q in questions):
                return False
        return True

    def _parse_group(self, group: Dict[str, Any]) -> CatalogGroup:
        # The API's English group name is the group slug
        label = BilingualText(en=str(group.get("slug") or ""), zh=str(group.get("name") or ""))
        problems = [
            CatalogProblem(
                id=str(question["questionFrontendId"]),
                title=BilingualText(
                    en=question.get("title") or "",
                    zh=question.get("translatedTitle") or question.get("title") or "",
                ),
                slug=question.get("titleSlug") or "",
                difficulty=normalize_difficulty(question.get("difficulty")),
                group_label=label,
            )
            for question in group.get("questions") or []
            if question.get("questionFrontendId") is not None
        ]
        return CatalogGroup(label=label, problems=problems)
