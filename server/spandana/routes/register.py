from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spandana.database import get_db
from spandana.schemas import TeamRegistrationRequest, TeamRegistrationResponse
from spandana.services.registration import register_team

router = APIRouter(tags=["Registration"])


@router.post("/register", response_model=TeamRegistrationResponse, status_code=201)
def register(request: TeamRegistrationRequest, db: Session = Depends(get_db)):
    """
    Register a two-member team.

    Both accounts must already exist with the auth provider (emails verified);
    this creates the team, its code and both participant records.
    """
    team = register_team(db, request)
    return TeamRegistrationResponse(success=True, team_id=team.id, team_code=team.team_code)
