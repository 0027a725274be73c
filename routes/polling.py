import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from auth import get_current_user_id
from database import Database, get_database
from errors import ConflictError, NotFoundError, ValidationError
from schemas.posts import PollResultsResponse, VoteRequest
from schemas.shared import MessageResponse
from utils.route_helpers import parse_stored_datetime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/post/polling", tags=["polling"])


@router.post("/vote", response_model=MessageResponse)
def submit_vote(
    body: VoteRequest,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    """Record one vote row per selected option and bump each option's votes_count."""
    if body.post_id is None or not body.selected_options:
        raise ValidationError("Post ID and selected options are required.")
    selected = list(dict.fromkeys(body.selected_options))
    with db.transaction() as uow:
        poll = uow.fetchone("SELECT * FROM posts_polling WHERE post_id = ?", (body.post_id,))
        if not poll:
            raise NotFoundError("Poll not found.")
        now = datetime.now(timezone.utc)
        if now < parse_stored_datetime(poll["start_datetime"]):
            raise ValidationError("Voting has not started for this poll.")
        if now > parse_stored_datetime(poll["end_datetime"]):
            raise ValidationError("Voting is closed for this poll.")
        anonymous = poll["is_anonymous"]
        if not poll["allow_multiple_choices"]:
            if len(selected) > 1:
                raise ValidationError("This poll allows only one choice.")
            # Anonymous votes store no voter, so they cannot be matched here
            if not anonymous and uow.fetchone(
                "SELECT 1 FROM polling_votes WHERE polling_post_id = ? AND user_id = ?",
                (body.post_id, current_user_id),
            ):
                raise ConflictError("You have already voted for this poll.")
        valid_ids = {
            row["id"] for row in uow.fetchall(
                "SELECT id FROM polling_options WHERE polling_post_id = ?", (body.post_id,)
            )
        }
        if not set(selected) <= valid_ids:
            raise ValidationError("One or more selected options are invalid.")
        if not anonymous:
            placeholders = ", ".join("?" for _ in selected)
            duplicate = uow.fetchone(
                f"SELECT 1 FROM polling_votes WHERE polling_post_id = ? AND user_id = ? AND option_id IN ({placeholders})",
                [body.post_id, current_user_id] + selected,
            )
            if duplicate:
                raise ConflictError("You have already voted for one or more of the selected options.")
        voter_id = None if anonymous else current_user_id
        for option_id in selected:
            uow.execute(
                "INSERT INTO polling_votes (polling_post_id, user_id, option_id) VALUES (?, ?, ?)",
                (body.post_id, voter_id, option_id),
            )
            uow.execute("UPDATE polling_options SET votes_count = votes_count + 1 WHERE id = ?", (option_id,))
    logger.info("Vote recorded on poll %s (%d options)", body.post_id, len(selected))
    return {"message": "Vote submitted successfully."}


@router.get("/{post_id}", response_model=PollResultsResponse)
def get_poll_results(
    post_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    with db.connect() as conn:
        poll = conn.execute("SELECT * FROM posts_polling WHERE post_id = ?", (post_id,)).fetchone()
        if not poll:
            raise NotFoundError("Poll not found.")
        options = [
            dict(row) for row in conn.execute(
                "SELECT id, text, votes_count FROM polling_options WHERE polling_post_id = ? ORDER BY id",
                (post_id,),
            ).fetchall()
        ]
        voted = []
        if not poll["is_anonymous"]:
            voted = [
                row["option_id"] for row in conn.execute(
                    "SELECT option_id FROM polling_votes WHERE polling_post_id = ? AND user_id = ? ORDER BY option_id",
                    (post_id, current_user_id),
                ).fetchall()
            ]
    return PollResultsResponse(
        post_id=post_id,
        is_anonymous=poll["is_anonymous"],
        allow_multiple_choices=poll["allow_multiple_choices"],
        total_votes=sum(option["votes_count"] for option in options),
        options=options,
        voted_option_ids=voted,
    )
