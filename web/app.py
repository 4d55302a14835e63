"""
FastAPI web application for the Ruthless chess service.

Endpoints (all POST, JSON in and out):
    /api/move         Built-in opponent's reply for a position
    /api/evaluate     One evaluation round-trip through the engine gateway
    /api/analyze      Post-game analysis: graded moves, summary, opening
    /api/analyze-move Live grade of a single move
    /api/opening      Opening name for a move list
    /api/rating       Elo update after one game
    /api/skill        Player aggregates and skill breakdown

Architecture notes:
- Sync endpoints (not async): FastAPI runs sync handlers in a thread pool,
  which is the correct pattern for blocking engine and gateway calls.
- The application lifespan owns the EngineGateway. It is created lazily (no
  process is spawned until the first evaluation) and terminated on shutdown.
- Stateless per request: clients send the full position or record each time.
"""

import logging
from contextlib import asynccontextmanager
from typing import Literal, Optional

import chess
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from analysis.analyzer import (
    GameAnalyticsSummary,
    MoveAnalyzer,
    get_analysis_stats,
    parse_move,
    player_moves,
)
from analysis.openings import Opening, detect_opening, format_opening
from analysis.rating import AI_OPPONENT_RATING, DEFAULT_RATING, PlayerRatingState
from analysis.skill import GameRecord, aggregate_player, get_skill_breakdown
from engine.constants import MAX_DEPTH
from engine.search import choose_move
from interface.channel import find_engine_command
from interface.gateway import (
    EngineGateway,
    EngineInitError,
    EngineTerminatedError,
    EngineTimeoutError,
)
from web.config import Settings, get_settings

# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

settings = get_settings()
logging.basicConfig(level=settings.log_level)
_log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    gateway = EngineGateway(
        command=find_engine_command(settings.engine_path),
        init_timeout=settings.init_timeout,
        timeout_margin=settings.timeout_margin,
        drain_timeout=settings.drain_timeout,
    )
    app.state.gateway = gateway
    try:
        yield
    finally:
        gateway.terminate()


app = FastAPI(title="Ruthless Chess", version="0.1.0", lifespan=lifespan)


def get_gateway(request: Request) -> EngineGateway:
    return request.app.state.gateway


def get_analyzer(
    gateway: EngineGateway = Depends(get_gateway),
    config: Settings = Depends(get_settings),
) -> MoveAnalyzer:
    return MoveAnalyzer(
        gateway,
        batch_depth=config.batch_depth,
        live_depth=config.live_depth,
        time_limit_ms=config.time_limit_ms,
    )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(EngineInitError)
@app.exception_handler(EngineTerminatedError)
async def engine_unavailable(request: Request, exc: Exception) -> JSONResponse:
    _log.warning("engine unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": f"Engine unavailable: {exc}"})


@app.exception_handler(EngineTimeoutError)
async def engine_timeout(request: Request, exc: EngineTimeoutError) -> JSONResponse:
    _log.warning("engine timeout: %s", exc)
    return JSONResponse(status_code=504, content={"detail": f"Engine timed out: {exc}"})


def _parse_board(fen: str) -> chess.Board:
    try:
        return chess.Board(fen)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid FEN: {exc}") from exc


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class MoveRequest(BaseModel):
    """
    Fields:
        fen:   Position the built-in opponent is to move in.
        depth: Search depth, clamped to [1, MAX_DEPTH]. Defaults to the
               configured search depth.
    """

    fen: str
    depth: Optional[int] = None

    @field_validator("depth")
    @classmethod
    def clamp_depth(cls, v: Optional[int]) -> Optional[int]:
        return None if v is None else max(1, min(v, MAX_DEPTH))


class MoveResponse(BaseModel):
    move: str
    san: str
    fen: str
    depth: int


class EvaluateRequest(BaseModel):
    fen: str
    depth: Optional[int] = Field(default=None, ge=1)
    time_limit_ms: Optional[int] = Field(default=None, ge=1)


class EvaluateResponse(BaseModel):
    score: int
    mate: Optional[int]
    best_move: Optional[str]
    depth: int
    pv: list[str]


class OpeningModel(BaseModel):
    eco: str
    name: str
    variation: str
    display: str

    @classmethod
    def from_opening(cls, opening: Opening | None) -> Optional["OpeningModel"]:
        if opening is None:
            return None
        return cls(
            eco=opening.eco,
            name=opening.name,
            variation=opening.variation,
            display=format_opening(opening),
        )


class AnalyzeRequest(BaseModel):
    """
    Fields:
        moves:              Game moves in SAN (UCI accepted).
        starting_fen:       Initial position; the standard start when omitted.
        player_color:       Side whose moves the summary covers.
        times_remaining_ms: Mover's clock after every half-move, indexed by ply,
                            for the time-pressure counters.
    """

    moves: list[str]
    player_color: Literal["white", "black"]
    starting_fen: Optional[str] = None
    times_remaining_ms: Optional[list[int]] = None


class AnalyzeResponse(BaseModel):
    moves: list[dict]
    summary: dict
    opening: Optional[OpeningModel]


class AnalyzeMoveRequest(BaseModel):
    move: str
    fen: str


class AnalyzeMoveResponse(BaseModel):
    analysis: Optional[dict]


class OpeningRequest(BaseModel):
    moves: list[str]


class OpeningResponse(BaseModel):
    opening: Optional[OpeningModel]


class RatingRequest(BaseModel):
    rating: int = DEFAULT_RATING
    games_played: int = Field(default=0, ge=0)
    opponent_rating: int = AI_OPPONENT_RATING
    result: Literal["win", "draw", "loss"]


class RatingResponse(BaseModel):
    rating_before: int
    rating_after: int
    change: int
    games_played: int
    is_rated: bool
    games_until_rated: int


class SkillRequest(BaseModel):
    games: list[GameRecord]
    summaries: list[GameAnalyticsSummary] = []


class SkillResponse(BaseModel):
    analytics: dict
    breakdown: dict


# ---------------------------------------------------------------------------
# API routes
# ---------------------------------------------------------------------------


@app.post("/api/move", response_model=MoveResponse)
def api_move(request: MoveRequest, config: Settings = Depends(get_settings)) -> MoveResponse:
    """
    Compute the built-in opponent's move.

    Raises:
        HTTPException 400: Malformed FEN or game already over.
    """
    board = _parse_board(request.fen)
    if board.is_game_over():
        raise HTTPException(status_code=400, detail=f"Game is already over: {board.result()}")

    depth = request.depth or config.search_depth
    move = choose_move(board, depth)
    san = board.san(move)
    board.push(move)
    _log.info("move=%s depth=%d fen=%s", move.uci(), depth, request.fen[:40])
    return MoveResponse(move=move.uci(), san=san, fen=board.fen(), depth=depth)


@app.post("/api/evaluate", response_model=EvaluateResponse)
def api_evaluate(
    request: EvaluateRequest,
    gateway: EngineGateway = Depends(get_gateway),
    config: Settings = Depends(get_settings),
) -> EvaluateResponse:
    board = _parse_board(request.fen)
    result = gateway.evaluate(
        board.fen(),
        depth=request.depth or config.batch_depth,
        time_limit_ms=request.time_limit_ms or config.time_limit_ms,
    )
    return EvaluateResponse(
        score=result.score,
        mate=result.mate,
        best_move=result.best_move,
        depth=result.depth,
        pv=list(result.pv),
    )


@app.post("/api/analyze", response_model=AnalyzeResponse)
def api_analyze(
    request: AnalyzeRequest,
    gateway: EngineGateway = Depends(get_gateway),
    analyzer: MoveAnalyzer = Depends(get_analyzer),
) -> AnalyzeResponse:
    """
    Grade a finished game.

    The engine is started up front so an unavailable engine is reported as
    503 rather than as a game with every ply skipped. The opening is only
    detected for games from the standard starting position. Every graded
    move is returned; the summary covers ``player_color``'s moves only.
    """
    if request.starting_fen is not None:
        _parse_board(request.starting_fen)
    gateway.initialize()

    analyses = analyzer.analyze_game(request.moves, starting_fen=request.starting_fen)
    own_moves = player_moves(analyses, request.player_color)
    summary = get_analysis_stats(own_moves, request.times_remaining_ms)
    opening = None if request.starting_fen else detect_opening(request.moves)
    return AnalyzeResponse(
        moves=[a.to_dict() for a in analyses],
        summary=summary.to_dict(),
        opening=OpeningModel.from_opening(opening),
    )


@app.post("/api/analyze-move", response_model=AnalyzeMoveResponse)
def api_analyze_move(
    request: AnalyzeMoveRequest,
    analyzer: MoveAnalyzer = Depends(get_analyzer),
) -> AnalyzeMoveResponse:
    """
    Grade one move during play.

    An illegal move is a 400; an engine failure yields ``analysis: null`` so
    live feedback never blocks the game.
    """
    board = _parse_board(request.fen)
    try:
        parse_move(board, request.move)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid move: {exc}") from exc

    analysis = analyzer.analyze_single_move(request.move, request.fen)
    return AnalyzeMoveResponse(analysis=analysis.to_dict() if analysis else None)


@app.post("/api/opening", response_model=OpeningResponse)
def api_opening(request: OpeningRequest) -> OpeningResponse:
    return OpeningResponse(opening=OpeningModel.from_opening(detect_opening(request.moves)))


@app.post("/api/rating", response_model=RatingResponse)
def api_rating(request: RatingRequest) -> RatingResponse:
    state = PlayerRatingState(rating=request.rating, games_played=request.games_played)
    state, change = state.apply_result(request.opponent_rating, request.result)
    _log.info("rating %d -> %d (%+d)", change.rating_before, change.rating_after, change.change)
    return RatingResponse(
        rating_before=change.rating_before,
        rating_after=change.rating_after,
        change=change.change,
        games_played=state.games_played,
        is_rated=state.is_rated,
        games_until_rated=state.games_until_rated,
    )


@app.post("/api/skill", response_model=SkillResponse)
def api_skill(request: SkillRequest) -> SkillResponse:
    try:
        analytics = aggregate_player(request.games, request.summaries)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SkillResponse(
        analytics=analytics.to_dict(),
        breakdown=get_skill_breakdown(analytics if analytics.total_games else None).to_dict(),
    )
