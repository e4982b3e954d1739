"""Property-based tests for reaction thread synthesis."""

from datetime import UTC, datetime

from hypothesis import given
from hypothesis import strategies as st

from feedpress.dedup import generate_post_id
from feedpress.models import Post
from feedpress.reactions import COMMENT_COUNT, COMMENT_MAX_CHARS, build_thread, shorten

json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.floats() | st.text(max_size=80),
    lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=10), children, max_size=4),
    max_leaves=10,
)


@st.composite
def reply_strategy(draw):
    """Generate partial or malformed model replies."""
    reply = draw(st.dictionaries(st.sampled_from(["board", "popularity", "hot", "comments", "posts"]), json_values))
    if draw(st.booleans()):
        reply["comments"] = draw(
            st.lists(
                st.fixed_dictionaries(
                    {},
                    optional={"text": json_values, "likes": json_values},
                ),
                max_size=6,
            )
        )
    return reply


@st.composite
def post_strategy(draw):
    url = "https://news.example.com/" + draw(st.text(alphabet="abcdef0123", min_size=1, max_size=12))
    post_id = generate_post_id(url)
    return Post(
        id=post_id,
        title=draw(st.text(min_size=1, max_size=80)),
        url=url,
        source_name="Example",
        published_at=datetime(2024, 1, 1, tzinfo=UTC),
        category=draw(st.sampled_from(["politics", "sports", "general", ""])),
        page_path=f"posts/{post_id}.html",
    )


class TestReactionProperties:
    """Property-based tests for build_thread."""

    @given(post_strategy(), reply_strategy())
    def test_thread_shape_property(self, post, reply):
        """
        Feature: feedpress, Property 22: Threads always have a fixed shape

        Whatever the model returns, a thread has exactly three numbered
        comments, a popularity within 0..100 and a non-empty board.
        """
        thread = build_thread(post, reply)

        assert len(thread.comments) == COMMENT_COUNT
        assert [c.no for c in thread.comments] == [1, 2, 3]
        assert 0 <= thread.popularity <= 100
        assert thread.board
        for comment in thread.comments:
            assert comment.text
            assert len(comment.text) <= COMMENT_MAX_CHARS
            assert comment.likes >= 0
        assert thread.url == post.url

    @given(post_strategy())
    def test_defaults_stable_property(self, post):
        """
        Feature: feedpress, Property 23: Fallback reactions are deterministic
        """
        assert build_thread(post, {}).to_dict() == build_thread(post, {}).to_dict()

    @given(st.text(max_size=300))
    def test_shorten_property(self, text):
        """
        Feature: feedpress, Property 24: Comments are bounded
        """
        shortened = shorten(text)

        assert len(shortened) <= COMMENT_MAX_CHARS
        assert "  " not in shortened
