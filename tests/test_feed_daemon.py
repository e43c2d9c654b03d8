import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from scorebook.errors import PostError, StateFileError, UpstreamFetchError
from scorebook.parsing.game_metadata_parser import (
    EventMeta,
    LiveSummary,
    PitcherDecision,
    PitcherDecisions,
)
from scorebook.pipeline import feed_daemon
from scorebook.pipeline.feed_daemon import (
    MAX_STORED_KEYS,
    DryRunPoster,
    FeedOptions,
    FeedState,
    build_parser,
    compact_posted_keys,
    default_state_path,
    load_state,
    options_from_args,
    run_cycle,
    run_feed,
    save_state,
)

T0 = datetime(2025, 3, 1, 20, 0, tzinfo=timezone.utc)

FIRST_INNING = [
    ['Top of the 1st'],
    ['1B', 'Smith singled to left field.', '1B 7', 'Smith', 'Doe', 0],
    ['K', 'Brown struck out looking.', 'K', 'Brown', 'Doe', 0],
    ['F8', 'Adams flied out to cf.', 'F8', 'Adams', 'Doe', 1],
]

WALK_OFF = [
    ['Bottom of the 9th'],
    ['HR', 'Jones homered to left field.', 'HR 7 RBI', 'Jones', 'Miller', 1],
]

DECISIONS = PitcherDecisions(
    winning=PitcherDecision(team='home', player='Doe, John', code='W', record='(2-0)', raw='W (2-0)'),
    losing=PitcherDecision(team='away', player='Miller, Jake', code='L', record='(0-1)', raw='L (0-1)'),
)


class FakeLiveSource:
    """Serves one status bar and one play-by-play page; both can be swapped between cycles"""

    def __init__(self, play_section, status_text='Top 1st', score=(0, 0), rows=FIRST_INNING,
                 title='1st Inning Play-by-play', decisions=DECISIONS):
        self.play_section = play_section
        self.status_text = status_text
        self.score = score
        self.rows = rows
        self.title = title
        self.decisions = decisions
        self.final_calls = 0

    def get_live_summary(self, game_id):
        event = EventMeta(id=game_id, title='Troy at Southern Miss', sport='bsgame', xml_file='usm/1.xml')
        return LiveSummary(id=game_id, event=event, status_text=self.status_text, visitor_team='Troy',
                           home_team='Southern Miss', visitor_score=self.score[0], home_score=self.score[1])

    def get_live_stats(self, game_id, view='game'):
        return SimpleNamespace(sections=[self.play_section(self.title, self.rows)])

    def get_final_game(self, game_id):
        self.final_calls += 1
        if self.decisions is None:
            raise UpstreamFetchError('stats', 'final views unavailable')
        return SimpleNamespace(pitcher_decisions=self.decisions)


def _options(**overrides):
    values = dict(game_id=636528, bootstrap='all')
    values.update(overrides)
    return FeedOptions(**values)


def _state():
    return FeedState.fresh(636528, T0)


class TestBootstrap:
    def test_latest_seeds_existing_plays(self, play_section):
        source = FakeLiveSource(play_section)
        poster = DryRunPoster()
        state = _state()

        assert run_cycle(_options(bootstrap='latest'), state, source, poster, T0) is False
        assert state.bootstrapped is True
        assert len(state.posted_play_keys) == 3
        assert poster.posts == []

        run_cycle(_options(bootstrap='latest'), state, source, poster, T0)
        assert poster.posts == []

    def test_latest_posts_only_new_plays(self, play_section):
        source = FakeLiveSource(play_section)
        poster = DryRunPoster()
        state = _state()
        run_cycle(_options(bootstrap='latest'), state, source, poster, T0)

        source.rows = FIRST_INNING + [['BB', 'Lee walked.', 'BB', 'Lee', 'Doe', 2]]
        run_cycle(_options(bootstrap='latest'), state, source, poster, T0)

        assert len(poster.posts) == 1
        assert 'Lee walked.' in poster.posts[0]['text']
        assert poster.posts[0]['reply_to'] is None
        assert state.root_tweet_id == state.last_tweet_id == poster.posts[0]['id']

    def test_latest_with_empty_page_posts_later_plays(self, play_section):
        source = FakeLiveSource(play_section, rows=[])
        poster = DryRunPoster()
        state = _state()

        run_cycle(_options(bootstrap='latest'), state, source, poster, T0)
        source.rows = FIRST_INNING
        run_cycle(_options(bootstrap='latest'), state, source, poster, T0)

        assert len(poster.posts) == 3


class TestPlayPosts:
    def test_all_posts_existing_plays_as_reply_chain(self, play_section):
        poster = DryRunPoster()
        state = _state()

        run_cycle(_options(), state, FakeLiveSource(play_section), poster, T0)

        assert [post['reply_to'] for post in poster.posts] == [None, poster.posts[0]['id'], poster.posts[1]['id']]
        assert poster.posts[0]['text'].startswith('Top 1st | 0 Outs\n\n')
        assert state.root_tweet_id == poster.posts[0]['id']
        assert state.last_tweet_id == poster.posts[2]['id']

    def test_standalone_thread_mode(self, play_section):
        poster = DryRunPoster()
        run_cycle(_options(thread_mode='none'), _state(), FakeLiveSource(play_section), poster, T0)
        assert [post['reply_to'] for post in poster.posts] == [None, None, None]

    def test_max_posts_per_cycle(self, play_section):
        source = FakeLiveSource(play_section)
        poster = DryRunPoster()
        state = _state()

        run_cycle(_options(max_posts_per_cycle=2), state, source, poster, T0)
        assert len(poster.posts) == 2

        run_cycle(_options(max_posts_per_cycle=2), state, source, poster, T0)
        assert len(poster.posts) == 3
        assert len(state.posted_play_keys) == 3

    def test_no_duplicate_posts(self, play_section):
        source = FakeLiveSource(play_section)
        poster = DryRunPoster()
        state = _state()

        run_cycle(_options(), state, source, poster, T0)
        run_cycle(_options(), state, source, poster, T0)

        assert len(poster.posts) == 3

    def test_tag_appended(self, play_section):
        poster = DryRunPoster()
        run_cycle(_options(append_tag='#NCAABaseball'), _state(), FakeLiveSource(play_section), poster, T0)
        assert all(post['text'].endswith('#NCAABaseball') for post in poster.posts)

    def test_poster_failure_raises_post_error(self, play_section):
        def broken(text, reply_to=None):
            raise ConnectionError('refused')

        state = _state()
        with pytest.raises(PostError):
            run_cycle(_options(), state, FakeLiveSource(play_section), broken, T0)
        assert state.posted_play_keys == []


class TestFinal:
    def test_official_final(self, play_section):
        source = FakeLiveSource(play_section, status_text='Final', score=(1, 2))
        poster = DryRunPoster()
        state = _state()

        assert run_cycle(_options(), state, source, poster, T0) is True

        final = poster.posts[-1]
        assert final['text'] == 'Final\nTroy - 1\nSouthern Miss - 2\n\nW - John Doe\nL - Jake Miller'
        assert final['reply_to'] == poster.posts[-2]['id']
        assert state.final_posted is True

        assert run_cycle(_options(), state, source, poster, T0) is True
        assert len(poster.posts) == 4

    def test_final_waits_for_pending_plays(self, play_section):
        source = FakeLiveSource(play_section, status_text='Final', score=(1, 2))
        poster = DryRunPoster()
        state = _state()

        assert run_cycle(_options(max_posts_per_cycle=1), state, source, poster, T0) is False
        assert state.final_posted is False
        assert len(poster.posts) == 1

    def test_decisions_unavailable(self, play_section):
        source = FakeLiveSource(play_section, status_text='Final', score=(1, 2), decisions=None)
        poster = DryRunPoster()

        run_cycle(_options(), _state(), source, poster, T0)

        assert poster.posts[-1]['text'] == 'Final\nTroy - 1\nSouthern Miss - 2'

    def test_final_post_disabled(self, play_section):
        source = FakeLiveSource(play_section, status_text='Final', score=(1, 2))
        poster = DryRunPoster()
        state = _state()

        assert run_cycle(_options(post_final=False), state, source, poster, T0) is True
        assert len(poster.posts) == 3
        assert source.final_calls == 0

    def test_likely_final_waits_for_grace_window(self, play_section):
        source = FakeLiveSource(play_section, status_text='Bot 9th', score=(2, 3),
                                rows=WALK_OFF, title='9th Inning Play-by-play')
        poster = DryRunPoster()
        state = _state()
        options = _options(final_grace_seconds=120)

        assert run_cycle(options, state, source, poster, T0) is False
        assert state.final_candidate_at == T0.isoformat()
        assert len(poster.posts) == 1

        assert run_cycle(options, state, source, poster, T0 + timedelta(seconds=60)) is False
        assert state.final_candidate_at == T0.isoformat()

        assert run_cycle(options, state, source, poster, T0 + timedelta(seconds=121)) is True
        assert poster.posts[-1]['text'].startswith('Final\nTroy - 2\nSouthern Miss - 3')
        assert state.final_candidate_at is None

    def test_candidate_cleared_when_game_continues(self, play_section):
        source = FakeLiveSource(play_section, status_text='Bot 9th', score=(2, 3),
                                rows=WALK_OFF, title='9th Inning Play-by-play')
        state = _state()
        run_cycle(_options(), state, source, DryRunPoster(), T0)
        assert state.final_candidate_at is not None

        source.score = (3, 3)
        run_cycle(_options(), state, source, DryRunPoster(), T0 + timedelta(seconds=30))
        assert state.final_candidate_at is None


class TestStateFile:
    def test_round_trip(self, tmp_path):
        path = str(tmp_path / 'nested' / 'state.json')
        state = _state()
        state.bootstrapped = True
        state.posted_play_keys = ['a', 'b']
        state.last_tweet_id = 'dry-run-1-2'
        state.root_tweet_id = 'dry-run-1-1'

        save_state(path, state)

        with open(path, encoding='utf-8') as f:
            raw = json.load(f)
        assert raw['gameId'] == 636528
        assert raw['postedPlayKeys'] == ['a', 'b']
        assert raw['finalCandidateAt'] is None

        loaded = load_state(path, 636528)
        assert loaded.posted_play_keys == ['a', 'b']
        assert loaded.root_tweet_id == 'dry-run-1-1'
        assert loaded.bootstrapped is True
        assert loaded.created_at == T0.isoformat()

    def test_missing_file_is_fresh(self, tmp_path):
        state = load_state(str(tmp_path / 'none.json'), 7)
        assert state.game_id == 7
        assert state.bootstrapped is False
        assert state.posted_play_keys == []

    def test_other_game_rejected(self, tmp_path):
        path = str(tmp_path / 'state.json')
        save_state(path, FeedState.fresh(1, T0))
        with pytest.raises(StateFileError):
            load_state(path, 2)

    def test_bad_json_rejected(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text('{not json', encoding='utf-8')
        with pytest.raises(StateFileError):
            load_state(str(path), 1)

        path.write_text('[1, 2]', encoding='utf-8')
        with pytest.raises(StateFileError):
            load_state(str(path), 1)

    def test_loaded_keys_compacted(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text(json.dumps({'gameId': 1, 'postedPlayKeys': ['a', 'b', 'a'], 'lastTweetId': 5}),
                        encoding='utf-8')
        state = load_state(str(path), 1)
        assert state.posted_play_keys == ['a', 'b']
        assert state.last_tweet_id is None

    def test_compact_keeps_newest(self):
        assert compact_posted_keys(['a', 'b', 'a', 'c']) == ['a', 'b', 'c']
        keys = compact_posted_keys([str(index) for index in range(MAX_STORED_KEYS + 5)])
        assert len(keys) == MAX_STORED_KEYS
        assert keys[0] == '5'

    def test_default_path(self):
        assert default_state_path(636528).replace('\\', '/') == 'data/tmp/x-feed/statbroadcast-636528.json'


class TestDryRunPoster:
    def test_ids_and_record(self):
        poster = DryRunPoster(clock=lambda: 1.5)
        assert poster('hello') == 'dry-run-1500-1'
        assert poster('again', 'dry-run-1500-1') == 'dry-run-1500-2'
        assert poster.posts[1] == {'id': 'dry-run-1500-2', 'text': 'again', 'reply_to': 'dry-run-1500-1'}


class TestRunFeed:
    def test_once_saves_state(self, play_section, tmp_path):
        path = str(tmp_path / 'state.json')
        poster = DryRunPoster()

        state = run_feed(_options(once=True, state_path=path), FakeLiveSource(play_section), poster)

        assert len(poster.posts) == 3
        assert load_state(path, 636528).posted_play_keys == state.posted_play_keys

    def test_exits_when_game_over(self, play_section, tmp_path):
        sleeps = []
        source = FakeLiveSource(play_section, status_text='Final', score=(1, 2))

        state = run_feed(_options(state_path=str(tmp_path / 's.json')), source, DryRunPoster(), sleep=sleeps.append)

        assert state.final_posted is True
        assert sleeps == []

    def test_cycle_error_logged_and_retried(self, play_section, tmp_path):
        source = FakeLiveSource(play_section, status_text='Final', score=(1, 2))
        calls = []
        original = source.get_live_summary

        def flaky(game_id):
            calls.append(game_id)
            if len(calls) == 1:
                raise UpstreamFetchError('stats', 'timeout')
            return original(game_id)

        source.get_live_summary = flaky
        sleeps = []

        state = run_feed(_options(interval_seconds=5, state_path=str(tmp_path / 's.json')), source,
                         DryRunPoster(), sleep=sleeps.append)

        assert sleeps == [5]
        assert state.final_posted is True

    def test_post_failure_keeps_earlier_posts(self, play_section, tmp_path):
        path = str(tmp_path / 'state.json')
        source = FakeLiveSource(play_section)
        inner = DryRunPoster()

        def failing_third(text, reply_to=None):
            if len(inner.posts) == 2:
                raise ConnectionError('post failed')
            return inner(text, reply_to)

        run_feed(_options(once=True, state_path=path), source, failing_third)

        saved = load_state(path, 636528)
        assert len(saved.posted_play_keys) == 2
        assert saved.last_tweet_id == inner.posts[1]['id']

        retry = DryRunPoster()
        run_feed(_options(once=True, state_path=path), source, retry)

        assert len(retry.posts) == 1
        assert 'Adams flied out to cf.' in retry.posts[0]['text']
        assert retry.posts[0]['reply_to'] == inner.posts[1]['id']

    def test_unusable_state_file_raises(self, play_section, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text('garbage', encoding='utf-8')
        with pytest.raises(StateFileError):
            run_feed(_options(state_path=str(path)), FakeLiveSource(play_section), DryRunPoster())


SETTINGS = {
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


class TestCommandLine:
    def test_flags_override_settings(self):
        args = build_parser().parse_args(
            ['--id', '636528', '--interval', '2', '--final-grace', '10', '--no-post-final', '--tag', '  ',
             '--bootstrap', 'all', '--thread-mode', 'none', '--max-posts', '3']
        )
        options = options_from_args(args, {**SETTINGS, 'append_tag': '#Env'})

        assert options.game_id == 636528
        assert options.interval_seconds == 5
        assert options.final_grace_seconds == 30
        assert options.post_final is False
        assert options.append_tag is None
        assert options.bootstrap == 'all'
        assert options.thread_mode == 'none'
        assert options.max_posts_per_cycle == 3
        assert options.state_path == default_state_path(636528)

    def test_settings_fill_missing_flags(self):
        args = build_parser().parse_args([])
        options = options_from_args(args, {**SETTINGS, 'game_id': 42, 'append_tag': '#Env', 'state_path': 's.json'})

        assert options.game_id == 42
        assert options.post_final is True
        assert options.append_tag == '#Env'
        assert options.state_path == 's.json'

    def test_game_id_required(self):
        with pytest.raises(ValueError):
            options_from_args(build_parser().parse_args([]), SETTINGS)

    def test_rejects_non_positive_numbers(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['--id', '0'])

    def test_main_dry_run_once(self, play_section, tmp_path, monkeypatch):
        monkeypatch.setattr(feed_daemon, 'get_feed_settings', lambda: dict(SETTINGS))
        monkeypatch.setattr(feed_daemon, 'StatsSource',
                            SimpleNamespace(from_settings=lambda settings: FakeLiveSource(play_section)))
        path = tmp_path / 'state.json'

        assert feed_daemon.main(['--id', '636528', '--once', '--dry-run', '--state', str(path)]) == 0
        assert json.loads(path.read_text(encoding='utf-8'))['bootstrapped'] is True

    def test_main_state_error_exit_code(self, play_section, tmp_path, monkeypatch):
        monkeypatch.setattr(feed_daemon, 'get_feed_settings', lambda: dict(SETTINGS))
        monkeypatch.setattr(feed_daemon, 'StatsSource',
                            SimpleNamespace(from_settings=lambda settings: FakeLiveSource(play_section)))
        path = tmp_path / 'state.json'
        path.write_text(json.dumps({'gameId': 1}), encoding='utf-8')

        assert feed_daemon.main(['--id', '636528', '--once', '--state', str(path)]) == 1
