import pytest
from google.api_core import exceptions as gexc

from services.errors import NotFound, TransientIOError, ValidationError
from services.firestore import POSTS


def post_state(store, post_id="post-1"):
    post = store.read(POSTS, post_id)
    return post["likes"], post["likedBy"]


class TestToggleLike:
    def test_like_then_unlike(self, engagement, fake_store):
        assert post_state(fake_store) == (0, [])

        liked = engagement.toggle_like("post-1", "u1")
        assert liked.liked is True
        assert liked.likes == 1
        assert post_state(fake_store) == (1, ["u1"])

        unliked = engagement.toggle_like("post-1", "u1")
        assert unliked.liked is False
        assert unliked.likes == 0
        assert post_state(fake_store) == (0, [])

    def test_count_tracks_membership(self, engagement, fake_store):
        for user in ["u1", "u2", "u3", "u2", "u4", "u1"]:
            engagement.toggle_like("post-1", user)
            likes, liked_by = post_state(fake_store)
            assert likes == len(liked_by)
        assert sorted(post_state(fake_store)[1]) == ["u3", "u4"]

    def test_counter_never_goes_negative(self, engagement, fake_store):
        post = fake_store.read(POSTS, "post-1")
        fake_store.seed(POSTS, "post-1", {**post, "likes": 0, "likedBy": ["u1"]})

        result = engagement.toggle_like("post-1", "u1")

        assert result.likes == 0
        assert post_state(fake_store) == (0, [])

    def test_missing_post(self, engagement):
        with pytest.raises(NotFound):
            engagement.toggle_like("missing", "u1")

    def test_user_required(self, engagement):
        with pytest.raises(ValidationError):
            engagement.toggle_like("post-1", "")

    def test_concurrent_like_is_not_lost(self, engagement, fake_store):
        def other_user_likes(_):
            post = fake_store.read(POSTS, "post-1")
            fake_store.seed(POSTS, "post-1", {**post, "likes": post["likes"] + 1,
                                              "likedBy": post["likedBy"] + ["u2"]})

        fake_store.on("update", other_user_likes)
        result = engagement.toggle_like("post-1", "u1")

        assert result.likes == 2
        likes, liked_by = post_state(fake_store)
        assert likes == 2
        assert sorted(liked_by) == ["u1", "u2"]

    def test_endless_contention_gives_up(self, db, retry, fake_store):
        from services.engagement import EngagementService
        engagement = EngagementService(db, retry, cas_max_rounds=2)

        def keep_changing(_):
            fake_store.seed(POSTS, "post-1", fake_store.read(POSTS, "post-1"))

        fake_store.on("update", keep_changing, times=6)
        with pytest.raises(TransientIOError):
            engagement.toggle_like("post-1", "u1")
        assert post_state(fake_store) == (0, [])


class TestComments:
    def test_comments_append_in_order(self, engagement, fake_store):
        first = engagement.add_comment("post-1", "u1", "Uma", "Lovely colours")
        second = engagement.add_comment("post-1", "u2", "Vik", "Where was this painted?")

        post = fake_store.read(POSTS, "post-1")
        assert post["comments"] == 2
        assert [c["id"] for c in post["commentsList"]] == [first.id, second.id]
        assert [c["text"] for c in post["commentsList"]] == ["Lovely colours", "Where was this painted?"]

    def test_markup_is_stripped(self, engagement):
        comment = engagement.add_comment("post-1", "u1", "Uma", "<b>bold</b> <script>x</script>move")
        assert "<" not in comment.text
        assert comment.text.startswith("bold")

    @pytest.mark.parametrize("text", ["", "   ", "<i></i>"])
    def test_empty_comment_rejected(self, engagement, fake_store, text):
        with pytest.raises(ValidationError):
            engagement.add_comment("post-1", "u1", "Uma", text)
        assert fake_store.read(POSTS, "post-1")["comments"] == 0

    def test_comment_on_missing_post(self, engagement):
        with pytest.raises(NotFound):
            engagement.add_comment("missing", "u1", "Uma", "hello")


class TestShares:
    def test_each_share_counts(self, engagement, fake_store):
        assert engagement.increment_share("post-1") == 1
        assert engagement.increment_share("post-1") == 2
        assert fake_store.read(POSTS, "post-1")["shares"] == 2


def unavailable(_):
    raise gexc.ServiceUnavailable("backend unavailable")


def acknowledgement_lost(_):
    raise gexc.DeadlineExceeded("deadline exceeded")


class TestStoreFailures:
    def test_like_is_retried_with_backoff(self, engagement, fake_store, sleeps):
        fake_store.on("update", unavailable, times=2)
        result = engagement.toggle_like("post-1", "u1")

        assert sleeps == [1.0, 2.0]
        assert (result.liked, result.likes) == (True, 1)
        assert post_state(fake_store) == (1, ["u1"])

    def test_like_gives_up_after_three_attempts(self, engagement, fake_store, sleeps):
        fake_store.on("update", unavailable, times=3)
        with pytest.raises(TransientIOError):
            engagement.toggle_like("post-1", "u1")

        assert sleeps == [1.0, 2.0]
        assert post_state(fake_store) == (0, [])

    def test_committed_like_is_not_reversed_by_the_retry(self, engagement, fake_store, sleeps):
        fake_store.after("update", acknowledgement_lost)
        result = engagement.toggle_like("post-1", "u1")

        assert sleeps == [1.0]
        assert (result.liked, result.likes) == (True, 1)
        assert post_state(fake_store) == (1, ["u1"])

    def test_committed_unlike_is_not_reversed_by_the_retry(self, engagement, fake_store):
        post = fake_store.read(POSTS, "post-1")
        fake_store.seed(POSTS, "post-1", {**post, "likes": 1, "likedBy": ["u1"]})

        fake_store.after("update", acknowledgement_lost)
        result = engagement.toggle_like("post-1", "u1")

        assert (result.liked, result.likes) == (False, 0)
        assert post_state(fake_store) == (0, [])

    def test_comment_is_retried_with_backoff(self, engagement, fake_store, sleeps):
        fake_store.on("update", unavailable, times=2)
        comment = engagement.add_comment("post-1", "u1", "Uma", "Lovely colours")

        post = fake_store.read(POSTS, "post-1")
        assert sleeps == [1.0, 2.0]
        assert post["comments"] == 1
        assert [c["id"] for c in post["commentsList"]] == [comment.id]

    def test_comment_gives_up_after_three_attempts(self, engagement, fake_store, sleeps):
        fake_store.on("update", unavailable, times=3)
        with pytest.raises(TransientIOError):
            engagement.add_comment("post-1", "u1", "Uma", "Lovely colours")

        assert sleeps == [1.0, 2.0]
        assert fake_store.read(POSTS, "post-1")["comments"] == 0

    def test_committed_comment_is_not_duplicated(self, engagement, fake_store, sleeps):
        fake_store.after("update", acknowledgement_lost)
        comment = engagement.add_comment("post-1", "u1", "Uma", "Lovely colours")

        post = fake_store.read(POSTS, "post-1")
        assert sleeps == [1.0]
        assert post["comments"] == 1
        assert [c["id"] for c in post["commentsList"]] == [comment.id]

    def test_share_is_retried_with_backoff(self, engagement, fake_store, sleeps):
        fake_store.on("update", unavailable, times=2)
        assert engagement.increment_share("post-1") == 1
        assert sleeps == [1.0, 2.0]
        assert fake_store.read(POSTS, "post-1")["shares"] == 1

    def test_share_gives_up_after_three_attempts(self, engagement, fake_store, sleeps):
        fake_store.on("update", unavailable, times=3)
        with pytest.raises(TransientIOError):
            engagement.increment_share("post-1")

        assert sleeps == [1.0, 2.0]
        assert fake_store.read(POSTS, "post-1")["shares"] == 0

    def test_committed_share_is_counted_once(self, engagement, fake_store, sleeps):
        fake_store.after("update", acknowledgement_lost)
        assert engagement.increment_share("post-1") == 1

        assert sleeps == [1.0]
        assert fake_store.read(POSTS, "post-1")["shares"] == 1

    def test_recent_share_ids_stay_bounded(self, engagement, fake_store):
        from services.firestore import RECENT_SHARE_IDS

        for _ in range(RECENT_SHARE_IDS + 5):
            engagement.increment_share("post-1")

        post = fake_store.read(POSTS, "post-1")
        assert post["shares"] == RECENT_SHARE_IDS + 5
        assert len(post["recentShareIds"]) == RECENT_SHARE_IDS
