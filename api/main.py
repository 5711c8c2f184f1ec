"""
Meta Balance Simulation API
FastAPI wrapper around the balance engine
"""

import sys
import os
import uuid
import time
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
from balance_engine import (
    MetaSimulation, SimulationSettings, load_settings,
    Archetype, Stat, GamePhase,
    InvalidCharacter, InvalidStat, InsufficientResources,
    EventNotFound, EventAlreadyResolved, SimulationBusy,
    ChangeNotFound, ChangeNotUndoable, InvalidPhase,
)
from balance_engine.events import ActiveEvent, EventResolution
from balance_engine.settings import SCHEDULE_MODES
from balance_engine.win_rates import RecalculationReport


app = FastAPI(title="Meta Balance Simulation API", version="1.0.0")

sessions: Dict[str, dict] = {}


class CreateSessionRequest(BaseModel):
    seed: Optional[int] = None
    schedule_mode: Optional[str] = None
    settings: Optional[dict] = None


class AdvancePhaseRequest(BaseModel):
    phase: Optional[str] = None


class TickRequest(BaseModel):
    dt: float = 1.0
    steps: int = 1


class ModifyStatRequest(BaseModel):
    stat: str
    percent: float


class SetStatRequest(BaseModel):
    value: float


class ResetRequest(BaseModel):
    seed: Optional[int] = None


class ResolveEventRequest(BaseModel):
    response_id: str


class BalanceChangeRequest(BaseModel):
    character: str
    stat: str
    percent: float
    rp_cost: Optional[int] = None
    cp_cost: Optional[int] = None
    name: str = ""


@app.get("/health")
def health_check():
    return {"status": "ok", "sessions": len(sessions)}


# ──────────────────────────────────────────────
# HELPERS
# ──────────────────────────────────────────────

def _get_session(session_id: str) -> dict:
    if session_id not in sessions:
        raise HTTPException(status_code=404, detail="Session not found")
    return sessions[session_id]


def _sim(session_id: str) -> MetaSimulation:
    return _get_session(session_id)["sim"]


def _engine_call(fn, *args, **kwargs):
    """Run an engine call and map engine errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except (InvalidCharacter, InvalidStat, EventNotFound, ChangeNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InsufficientResources, EventAlreadyResolved, ChangeNotUndoable) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (SimulationBusy, InvalidPhase) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _serialize_event(event: ActiveEvent) -> dict:
    return event.to_dict()


def _serialize_resolution(result: EventResolution) -> dict:
    return result.to_dict()


def _serialize_report(report: Optional[RecalculationReport]) -> Optional[dict]:
    return report.to_dict() if report else None


def _serialize_characters(sim: MetaSimulation) -> dict:
    out = {}
    for arch, data in sim.store.to_dict().items():
        a = Archetype(arch)
        data["matchup_advantage"] = round(sim.aggregator.matchups.overall_advantage(a), 3)
        data["popularity_trend"] = round(sim.aggregator.popularity.trend_of(a), 3)
        out[arch] = data
    return out


def _serialize_status(session: dict) -> dict:
    sim: MetaSimulation = session["sim"]
    return {
        "week": sim.week,
        "phase": sim.phase.value,
        "schedule_mode": sim.settings.events.schedule_mode,
        "clock": round(sim.clock, 2),
        "resources": sim.resources.to_dict(),
        "sentiment": round(sim.get_community_sentiment(), 2),
        "sentiment_label": sim.sentiment.describe(),
        "meta_health": sim.get_meta_health().to_dict(),
        "active_events": len(sim.get_active_events()),
        "queued_events": len(sim.events.get_queued_events()),
    }


# ──────────────────────────────────────────────
# SESSIONS
# ──────────────────────────────────────────────

@app.post("/sessions")
def create_session(req: Optional[CreateSessionRequest] = None):
    req = req or CreateSessionRequest()
    if req.schedule_mode is not None and req.schedule_mode not in SCHEDULE_MODES:
        raise HTTPException(status_code=400, detail=f"Unknown schedule mode '{req.schedule_mode}'")
    try:
        if req.settings:
            settings = SimulationSettings.from_dict(req.settings)
        else:
            settings = load_settings()
        if req.schedule_mode is not None:
            settings.events.schedule_mode = req.schedule_mode
        sim = MetaSimulation(settings=settings, seed=req.seed)
    except (ValueError, InvalidCharacter, InvalidStat) as e:
        raise HTTPException(status_code=400, detail=f"Invalid settings: {e}")

    session_id = str(uuid.uuid4())
    now = time.time()
    sessions[session_id] = {
        "sim": sim,
        "seed": req.seed,
        "created_at": now,
    }
    return {"session_id": session_id, "created_at": now}


@app.delete("/sessions/{session_id}")
def delete_session(session_id: str):
    if session_id not in sessions:
        raise HTTPException(status_code=404, detail="Session not found")
    del sessions[session_id]
    return {"deleted": True}


@app.get("/sessions/{session_id}")
def get_session(session_id: str):
    session = _get_session(session_id)
    result = {
        "session_id": session_id,
        "seed": session["seed"],
        "created_at": session["created_at"],
    }
    result.update(_serialize_status(session))
    return result


# ──────────────────────────────────────────────
# LOOP
# ──────────────────────────────────────────────

@app.post("/sessions/{session_id}/phase")
def advance_phase(session_id: str, req: Optional[AdvancePhaseRequest] = None):
    session = _get_session(session_id)
    sim: MetaSimulation = session["sim"]
    phase = req.phase if req else None
    previous = sim.phase
    _engine_call(sim.advance_phase, phase)
    return {
        "previous_phase": previous.value,
        "phase": sim.phase.value,
        "week": sim.week,
        "active_events": [_serialize_event(e) for e in sim.get_active_events()],
        "last_recalculation": _serialize_report(sim.last_report) if sim.phase == GamePhase.PLANNING else None,
        "implementation": (sim.last_implementation.to_dict()
                           if sim.phase == GamePhase.IMPLEMENTATION and sim.last_implementation else None),
    }


@app.post("/sessions/{session_id}/week")
def advance_week(session_id: str):
    sim = _sim(session_id)
    week = _engine_call(sim.advance_week)
    return {"week": week, "resources": sim.resources.to_dict()}


@app.post("/sessions/{session_id}/tick")
def tick(session_id: str, req: TickRequest):
    sim = _sim(session_id)
    if req.dt < 0 or req.steps < 1:
        raise HTTPException(status_code=400, detail="dt must be >= 0 and steps >= 1")
    expired = []
    spawned = []
    feedback = []
    for _ in range(req.steps):
        result = _engine_call(sim.tick, req.dt)
        expired.extend(_serialize_resolution(r) for r in result.expired)
        spawned.extend(_serialize_event(e) for e in result.spawned)
        if result.feedback is not None:
            feedback.append(result.feedback.to_dict())
    return {"clock": round(sim.clock, 2), "expired": expired, "spawned": spawned, "feedback": feedback}


# ──────────────────────────────────────────────
# CHARACTERS
# ──────────────────────────────────────────────

@app.get("/sessions/{session_id}/characters")
def get_characters(session_id: str):
    sim = _sim(session_id)
    return {"characters": _serialize_characters(sim)}


@app.post("/sessions/{session_id}/characters/{archetype}/modify")
def modify_stat(session_id: str, archetype: str, req: ModifyStatRequest):
    sim = _sim(session_id)
    value = _engine_call(sim.modify_stat, archetype, req.stat, req.percent)
    return {
        "character": archetype.lower(),
        "stat": req.stat,
        "value": round(value, 2),
        "win_rate": round(sim.get_stat(archetype, Stat.WIN_RATE), 2),
    }


@app.put("/sessions/{session_id}/characters/{archetype}/stats/{stat}")
def set_stat(session_id: str, archetype: str, stat: str, req: SetStatRequest):
    sim = _sim(session_id)
    value = _engine_call(sim.set_stat, archetype, stat, req.value)
    return {"character": archetype.lower(), "stat": stat, "value": round(value, 2)}


@app.post("/sessions/{session_id}/reset")
def reset_characters(session_id: str, req: Optional[ResetRequest] = None):
    sim = _sim(session_id)
    _engine_call(sim.reset_all_characters, req.seed if req else None)
    return {"reset": True, "characters": _serialize_characters(sim)}


@app.post("/sessions/{session_id}/recalculate")
def recalculate(session_id: str):
    sim = _sim(session_id)
    report = _engine_call(sim.recalculate_win_rates)
    return _serialize_report(report)


# ──────────────────────────────────────────────
# BALANCE CHANGES
# ──────────────────────────────────────────────

@app.get("/sessions/{session_id}/changes")
def get_balance_changes(session_id: str):
    sim = _sim(session_id)
    result = sim.implementation.to_dict()
    result["resources"] = sim.resources.to_dict()
    return result


@app.post("/sessions/{session_id}/changes")
def queue_balance_change(session_id: str, req: BalanceChangeRequest):
    sim = _sim(session_id)
    change = _engine_call(sim.queue_balance_change, req.character, req.stat, req.percent,
                          req.rp_cost, req.cp_cost, req.name)
    rp, cp = sim.implementation.total_cost()
    return {"change": change.to_dict(), "queued_cost": {"rp": rp, "cp": cp}}


@app.delete("/sessions/{session_id}/changes/{change_id}")
def cancel_balance_change(session_id: str, change_id: str):
    sim = _sim(session_id)
    change = _engine_call(sim.cancel_balance_change, change_id)
    return {"change": change.to_dict()}


@app.post("/sessions/{session_id}/changes/implement")
def implement_balance_changes(session_id: str):
    sim = _sim(session_id)
    report = _engine_call(sim.implement_balance_changes)
    return {"report": report.to_dict(), "resources": sim.resources.to_dict()}


@app.post("/sessions/{session_id}/changes/{change_id}/undo")
def undo_balance_change(session_id: str, change_id: str):
    sim = _sim(session_id)
    value = _engine_call(sim.undo_balance_change, change_id)
    change = sim.implementation.find(change_id)
    return {"change": change.to_dict(), "value": round(value, 2)}


# ──────────────────────────────────────────────
# META
# ──────────────────────────────────────────────

@app.get("/sessions/{session_id}/meta")
def get_meta(session_id: str):
    sim = _sim(session_id)
    pops = sim.store.column(Stat.POPULARITY)
    most, least = sim.aggregator.popularity.extremes(pops)
    return {
        "meta_health": sim.get_meta_health().to_dict(),
        "cycle": sim.aggregator.meta.cycle,
        "meta_shift_intensity": round(sim.aggregator.meta.meta_shift_intensity, 3),
        "smoothed_meta_shift": round(sim.aggregator.meta.smoothed_shift, 3),
        "popularity_diversity": round(sim.aggregator.popularity.meta_diversity(pops), 2),
        "most_popular": most.value if most else None,
        "least_popular": least.value if least else None,
        "sentiment": round(sim.get_community_sentiment(), 2),
        "last_recalculation": _serialize_report(sim.last_report),
    }


@app.get("/sessions/{session_id}/matchups")
def get_matchups(session_id: str):
    sim = _sim(session_id)
    return {"matchups": sim.aggregator.matchups.to_dict()}


# ──────────────────────────────────────────────
# EVENTS / FEEDBACK
# ──────────────────────────────────────────────

@app.get("/sessions/{session_id}/events")
def get_events(session_id: str):
    sim = _sim(session_id)
    return {
        "active": [_serialize_event(e) for e in sim.get_active_events()],
        "queued": [_serialize_event(e) for e in sim.events.get_queued_events()],
        "resources": sim.resources.to_dict(),
    }


@app.post("/sessions/{session_id}/events/{event_id}/resolve")
def resolve_event(session_id: str, event_id: str, req: ResolveEventRequest):
    sim = _sim(session_id)
    result = _engine_call(sim.resolve_event, event_id, req.response_id)
    return {
        "resolution": _serialize_resolution(result),
        "resources": sim.resources.to_dict(),
        "sentiment": round(sim.get_community_sentiment(), 2),
    }


@app.post("/sessions/{session_id}/events/{event_id}/expire")
def expire_event(session_id: str, event_id: str):
    sim = _sim(session_id)
    result = _engine_call(sim.force_expire_event, event_id)
    return {"resolution": _serialize_resolution(result)}


@app.post("/sessions/{session_id}/events/clear")
def clear_events(session_id: str):
    sim = _sim(session_id)
    results = _engine_call(sim.clear_events)
    return {"cleared": len(results), "resolutions": [_serialize_resolution(r) for r in results]}


@app.get("/sessions/{session_id}/feedback")
def get_feedback(session_id: str):
    sim = _sim(session_id)
    return {
        "shown": [f.to_dict() for f in sim.feedback_queue.shown],
        "pending": len(sim.feedback_queue.pending),
        "displaying": sim.feedback_queue.active,
    }


@app.get("/sessions/{session_id}/notices")
def get_notices(session_id: str, limit: int = 50):
    sim = _sim(session_id)
    return {"notices": [n.to_dict() for n in sim.notices[-limit:]]}
