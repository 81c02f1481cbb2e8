from __future__ import annotations

from typing import Sequence
from urllib.parse import quote, urljoin

from bs4 import BeautifulSoup

from mention_monitor.config import SourceSettings
from mention_monitor.models import Mention
from mention_monitor.utils.deadline import Deadline
from mention_monitor.utils.text_utils import normalize_whitespace
from mention_monitor.utils.url_utils import derive_mention_id

from .base import DEFAULT_TIMEOUT_SECONDS, Source, collect_per_query, http_get, option_float
from .registry import register_source


class PkgGoDevSource:
    """Importers of Go packages listed on pkg.go.dev.

    Only keywords that look like module paths (contain a ``/``) are queried.
    """

    name = "pkggodev"
    base_url = "https://pkg.go.dev"

    def __init__(self, settings: SourceSettings) -> None:
        self.timeout_seconds = option_float(
            settings.options, "timeout_seconds", DEFAULT_TIMEOUT_SECONDS
        )

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        package_paths = [keyword for keyword in keywords if "/" in keyword]
        return collect_per_query(
            self.name,
            package_paths,
            deadline,
            lambda package_path: self._importers(package_path, deadline),
        )

    def _importers(self, package_path: str, deadline: Deadline) -> list[Mention]:
        page_url = f"{self.base_url}/{quote(package_path, safe='/')}?tab=importedby"
        response = http_get(page_url, deadline, timeout_seconds=self.timeout_seconds)
        soup = BeautifulSoup(response.text, "html.parser")

        mentions: list[Mention] = []
        for link in soup.select(".ImportedBy-list a"):
            importer = normalize_whitespace(link.get_text())
            href = str(link.get("href") or "").strip()
            if not importer or not href:
                continue

            importer_url = urljoin(f"{self.base_url}/", href)
            mentions.append(
                Mention(
                    id=derive_mention_id("pkggodev", f"{package_path}_{importer}", importer_url),
                    source=self.name,
                    kind="import",
                    keyword=package_path,
                    title=f"Imported by {importer}",
                    content=f"Package {importer} imports {package_path}",
                    url=importer_url,
                    author=importer,
                )
            )
        return mentions


@register_source("pkggodev")
def _build_pkggodev_source(settings: SourceSettings) -> Source:
    return PkgGoDevSource(settings)
