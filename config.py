"""
Конфигурация поискового движка
"""

import os
from typing import List, Dict, Any

# Список сайтов для индексации
SITES: List[Dict[str, str]] = [
    {'url': 'https://www.playback.ru', 'name': 'PlayBack.Ru'},
    {'url': 'https://www.svetlovka.ru', 'name': 'Светловка'},
    {'url': 'https://skillbox.ru', 'name': 'Skillbox'},
]

# Конфигурация краулера
CRAWLER_CONFIG: Dict[str, Any] = {
    'user_agent': 'HeliontSearchBot',
    'timeout': 10,
    'request_delay': 0.2,  # Пауза перед каждым запросом, секунды
    'max_workers': int(os.environ.get('SEARCH_ENGINE_WORKERS', os.cpu_count() or 4)),
    'max_url_length': 2048,
    'monitor_interval': 0.5,
    'excluded_extensions': (
        'jpg', 'jpeg', 'png', 'gif', 'bmp', 'pdf', 'doc', 'docx', 'xls', 'xlsx',
        'ppt', 'pptx', 'mp3', 'mp4', 'avi', 'mov', 'wmv', 'zip', 'rar',
    ),
}

# Конфигурация базы данных
DATABASE_CONFIG: Dict[str, Any] = {
    'db_name': os.environ.get('SEARCH_ENGINE_DB', 'search_engine.db'),
    'timeout': 30,
}

# Конфигурация поиска
SEARCH_CONFIG: Dict[str, Any] = {
    'default_limit': 20,
    'frequency_threshold': 0.8,
    'snippet_length': 200,
    'min_sentence_length': 10,
    'max_snippet_sentences': 3,
    'fallback_snippet_sentences': 2,
    'highlight_tag': 'b',
    'no_title_placeholder': 'No title',
}

LOG_LEVEL = os.environ.get('SEARCH_ENGINE_LOG_LEVEL', 'INFO')
