"""
RemoteWalker - Paginated crawl of a remote JSON API source.
"""

import json
import logging
import threading
from datetime import datetime
from typing import Iterator, Mapping, Optional
from urllib.parse import urljoin

import requests

from .errors import NotFound, SourceUnreachable
from .picture_record import DataSource, PictureRecord, RemoteConfig
from .remote_template import get_value_by_path, resolve_template
from .source_walker import Observation, SourceWalker, now_millis


def parse_modified(value) -> Optional[int]:
    """
    Parse a remote modified field into epoch milliseconds.

    Accepts numbers (seconds or milliseconds since the epoch) and ISO 8601
    strings. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Values this large are already milliseconds
        return int(value) if value > 1e11 else int(value * 1000)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return parse_modified(float(text))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            return None
        return int(parsed.timestamp() * 1000)
    return None


class RemoteWalker(SourceWalker):
    """
    Crawls a paginated remote API, one page at a time.

    Stops when a page yields no items, when ``max_images`` items have been
    seen, or when a request fails. A failure raises SourceUnreachable after
    the items of earlier pages have been yielded; there is no retry.
    """

    kind = 'remote'

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        super().__init__(logger, cancel_event)
        self.session = session or requests.Session()
        self.timeout = timeout

    def walk(
        self,
        source: DataSource,
        existing: Mapping[str, PictureRecord]
    ) -> Iterator[Observation]:
        config = source.remote
        if config is None:
            raise NotFound("Remote source has no remote configuration", source.name)

        page = 1
        index = 0
        seen = set()

        while True:
            self.check_cancelled()
            if config.max_images and len(seen) >= config.max_images:
                self.logger.info(f"{source.name}: reached max_images ({config.max_images})")
                return

            status_text = f"Fetching page {page} from {source.name}..."
            items = self.fetch_page(source, config, page)
            if not isinstance(items, list) or not items:
                self.logger.debug(f"{source.name}: page {page} is empty, crawl finished")
                return

            fraction = 1.0 - 0.5 ** page
            new_on_page = 0
            for item in items:
                if config.max_images and len(seen) >= config.max_images:
                    break
                record = self._record_from_item(source, config, item, existing)
                if record is None or record.identifier in seen:
                    continue
                seen.add(record.identifier)
                new_on_page += 1
                current = existing.get(record.identifier)
                if current is not None and current.modified == record.modified:
                    yield Observation(record.identifier, None, index, None, status_text, fraction)
                else:
                    yield Observation(record.identifier, record, index, None, status_text, fraction)
                index += 1
            if new_on_page == 0:
                self.logger.info(f"{source.name}: page {page} repeated earlier items, crawl finished")
                return
            page += 1

    def fetch_page(self, source: DataSource, config: RemoteConfig, page: int):
        """
        Request one page and return the located item array.

        Raises:
            SourceUnreachable: On any network, HTTP or decoding failure
        """
        url = resolve_template(config.url, page)
        params = {}
        if config.body:
            try:
                params = json.loads(resolve_template(config.body, page))
            except ValueError as e:
                raise SourceUnreachable(f"Request body template is not valid JSON: {e}", source.name)

        self.logger.debug(f"{source.name}: {config.method} {url} (page {page})")
        try:
            if config.method == 'POST':
                response = self.session.post(
                    url, json=params, headers=config.headers, timeout=self.timeout
                )
            else:
                response = self.session.get(
                    url, params=params or None, headers=config.headers, timeout=self.timeout
                )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise SourceUnreachable(f"Failed to fetch page {page}: {e}", source.name)

        return get_value_by_path(data, config.response_path)

    def _record_from_item(
        self,
        source: DataSource,
        config: RemoteConfig,
        item,
        existing: Mapping[str, PictureRecord]
    ) -> Optional[PictureRecord]:
        mapping = config.field_mapping
        image_url = get_value_by_path(item, mapping.url)
        name = get_value_by_path(item, mapping.name)
        if not image_url or not name:
            return None

        image_url = str(image_url)
        if config.base_url and not image_url.startswith('http'):
            image_url = urljoin(config.base_url, image_url)

        modified = None
        if mapping.modified:
            modified = parse_modified(get_value_by_path(item, mapping.modified))
        if modified is None:
            # Without a modified field, keep the known timestamp stable
            current = existing.get(image_url)
            modified = current.modified if current is not None else now_millis()

        return PictureRecord(
            source_id=source.id,
            name=str(name),
            identifier=image_url,
            modified=modified,
        )
