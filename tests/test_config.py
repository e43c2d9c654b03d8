from scorebook.config import get_feed_settings, get_source_settings, parse_bool, parse_int

FEED_VARIABLES = [
    'X_FEED_GAME_ID', 'X_FEED_INTERVAL_SECONDS', 'X_FEED_FINAL_GRACE_SECONDS', 'X_FEED_BOOTSTRAP',
    'X_FEED_THREAD_MODE', 'X_FEED_MAX_POSTS_PER_CYCLE', 'X_FEED_POST_FINAL', 'X_FEED_APPEND_TAG',
    'X_FEED_STATE_PATH',
]


def _clear(monkeypatch, names):
    for name in names:
        monkeypatch.delenv(name, raising=False)


class TestParsers:
    def test_parse_bool(self):
        assert parse_bool(None, True) is True
        assert parse_bool('  ', False) is False
        assert parse_bool('YES', False) is True
        assert parse_bool('off', True) is False
        assert parse_bool('maybe', True) is False

    def test_parse_int(self):
        assert parse_int('12', 5) == 12
        assert parse_int('abc', 5) == 5
        assert parse_int('-3', 5) == 5
        assert parse_int('0', 5) == 5
        assert parse_int('2', 20, minimum=5) == 5
        assert parse_int(None, 7) == 7

    def test_parse_int_zero_allowed_by_minimum(self):
        assert parse_int('0', 300, minimum=0) == 0
        assert parse_int('-4', 300, minimum=0) == 0
        assert parse_int('junk', 300, minimum=0) == 300


class TestFeedSettings:
    def test_defaults(self, monkeypatch):
        _clear(monkeypatch, FEED_VARIABLES)

        settings = get_feed_settings()

        assert settings == {
            'game_id': None,
            'interval_seconds': 20,
            'final_grace_seconds': 120,
            'bootstrap': 'latest',
            'thread_mode': 'reply',
            'max_posts_per_cycle': 6,
            'post_final': True,
            'append_tag': None,
            'state_path': None,
        }

    def test_environment_values(self, monkeypatch):
        _clear(monkeypatch, FEED_VARIABLES)
        monkeypatch.setenv('X_FEED_GAME_ID', '636528')
        monkeypatch.setenv('X_FEED_INTERVAL_SECONDS', '2')
        monkeypatch.setenv('X_FEED_FINAL_GRACE_SECONDS', '45')
        monkeypatch.setenv('X_FEED_BOOTSTRAP', 'ALL')
        monkeypatch.setenv('X_FEED_THREAD_MODE', 'sideways')
        monkeypatch.setenv('X_FEED_POST_FINAL', 'false')
        monkeypatch.setenv('X_FEED_APPEND_TAG', ' #NCAABaseball ')

        settings = get_feed_settings()

        assert settings['game_id'] == 636528
        assert settings['interval_seconds'] == 5
        assert settings['final_grace_seconds'] == 45
        assert settings['bootstrap'] == 'all'
        assert settings['thread_mode'] == 'reply'
        assert settings['post_final'] is False
        assert settings['append_tag'] == '#NCAABaseball'


class TestSourceSettings:
    def test_overrides(self, monkeypatch):
        monkeypatch.setenv('STATS_BASE_URL', 'https://example.test/ws')
        monkeypatch.setenv('STATS_MAX_RETRIES', '5')
        monkeypatch.delenv('STATS_TIMEOUT_SECONDS', raising=False)
        monkeypatch.setenv('STATS_LIVE_CACHE_SECONDS', '3')

        settings = get_source_settings()

        assert settings['base_url'] == 'https://example.test/ws'
        assert settings['max_retries'] == 5
        assert settings['timeout'] == 20
        assert settings['cache_ttl']['live'] == 3

    def test_zero_cache_ttl(self, monkeypatch):
        monkeypatch.setenv('STATS_FINAL_CACHE_SECONDS', '0')
        monkeypatch.delenv('STATS_EVENT_CACHE_SECONDS', raising=False)

        settings = get_source_settings()

        assert settings['cache_ttl']['final'] == 0
        assert settings['cache_ttl']['event'] == 300
