"""
Вспомогательные функции
"""

import re
from typing import Optional, Sequence
from urllib.parse import urlparse
import logging

from config import LOG_LEVEL

# Настройка логирования
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('search_engine')

_TAG_RE = re.compile(r'<[^>]*>')
_SPACES_RE = re.compile(r'\s+')


def trim_trailing_slash(url: str) -> str:
    """Удаление слеша в конце URL"""
    url = url.strip()
    return url[:-1] if url.endswith('/') else url


def relative_path(url: str) -> str:
    """
    Путь страницы относительно корня сайта: путь URL и строка запроса.
    Схема, регистр хоста и порт на путь не влияют, пустой путь - "/"
    """
    parsed = urlparse(url.strip())
    path = parsed.path
    if path.endswith('/'):
        path = path[:-1]
    path = path or '/'
    if parsed.query:
        path += f'?{parsed.query}'
    return path


def normalize_host(host: Optional[str]) -> Optional[str]:
    """Приведение хоста к нижнему регистру без префикса www."""
    if host is None:
        return None
    host = host.lower()
    return host[4:] if host.startswith('www.') else host


def is_crawlable_link(candidate_url: str, site_url: str,
                      excluded_extensions: Sequence[str], max_length: int) -> bool:
    """
    Проверка ссылки перед обходом: тот же хост, без якоря,
    не бинарный ресурс и не слишком длинная
    """
    try:
        candidate = urlparse(candidate_url)
        site = urlparse(site_url)
    except ValueError:
        return False

    if candidate.scheme not in ('http', 'https'):
        return False
    if not candidate.hostname or not site.hostname:
        return False
    if candidate.hostname.lower() != site.hostname.lower():
        return False
    if candidate.fragment or '#' in candidate_url:
        return False

    path = candidate.path.lower() or '/'
    if '.' in path.rsplit('/', 1)[-1]:
        extension = path.rsplit('.', 1)[-1]
        if extension in excluded_extensions:
            return False

    return len(candidate_url) < max_length


def strip_markup(html: str) -> str:
    """
    Удаление HTML тегов и схлопывание пробелов
    """
    if not html:
        return ''
    text = _TAG_RE.sub(' ', html)
    # Одиночные угловые скобки вне тегов тоже не должны попасть в текст
    text = text.replace('<', ' ').replace('>', ' ')
    return _SPACES_RE.sub(' ', text).strip()


def extract_title(html: str, placeholder: str) -> str:
    """Текст между первыми <title> и </title> без учета регистра"""
    if not html:
        return placeholder

    lowered = html.lower()
    start = lowered.find('<title>')
    end = lowered.find('</title>')
    if start != -1 and end != -1 and start < end:
        return html[start + len('<title>'):end].strip()

    return placeholder
