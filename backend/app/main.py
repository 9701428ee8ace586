"""
Bellman Solver API.

Stateless HTTP front end for the rule engine and the value-function
solver. The client keeps the derivation history and sends the active
expression with every request.

Endpoints:
    GET  /health               - Health check
    GET  /api/rules            - Full rule catalog
    POST /api/rules/applicable - Rules that apply to an expression
    POST /api/apply            - Apply one rule, return the next step
    POST /api/solve            - Solve V = (I − γP)^{-1} R
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from solver.engine import applicable_rules, apply_rule, find_rule
from solver.errors import SolverError, UnknownRule
from solver.numerical import solve_value_function
from solver.rules import MRP_BELLMAN_RULES, START_STEP, DerivationStep
from solver.settings import get_settings

logger = logging.getLogger(__name__)

_SETTINGS = get_settings()

app = FastAPI(title="Bellman Solver API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ExpressionRequest(BaseModel):
    expression: str


class ApplyRequest(BaseModel):
    expression: str
    rule_id: str


class RuleInfo(BaseModel):
    id: str
    name: str
    display_form: Optional[str] = None
    explanation: str


class StepInfo(BaseModel):
    expression: str
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    explanation: Optional[str] = None


class SolveRequest(BaseModel):
    gamma: str = _SETTINGS["gamma"]
    transition_matrix: str = _SETTINGS["transition_matrix"]
    rewards: str = _SETTINGS["rewards"]


class TrailStep(BaseModel):
    step_number: int
    description: str
    expression: str
    explanation: str


class SolveResponse(BaseModel):
    equation: str
    given: dict
    method: dict
    steps: list[TrailStep]
    final_answer: str
    values: list[float]
    verification_steps: list[TrailStep]
    summary: dict


@app.get("/health")
def health():
    return {"status": "ok", "rules": len(MRP_BELLMAN_RULES)}


@app.get("/api/rules", response_model=list[RuleInfo])
def list_rules():
    return [rule.as_dict() for rule in MRP_BELLMAN_RULES]


@app.get("/api/start", response_model=StepInfo)
def start_step():
    return START_STEP.as_dict()


@app.post("/api/rules/applicable", response_model=list[RuleInfo])
def rules_for(req: ExpressionRequest):
    return [rule.as_dict() for rule in applicable_rules(req.expression, MRP_BELLMAN_RULES)]


@app.post("/api/apply", response_model=StepInfo)
def apply(req: ApplyRequest):
    try:
        rule = find_rule(req.rule_id, MRP_BELLMAN_RULES)
    except UnknownRule as e:
        raise HTTPException(status_code=404, detail=str(e))

    current = DerivationStep(expression=req.expression)
    try:
        step = apply_rule(current, rule)
    except Exception as e:
        logger.warning("Rule %r failed: %s", rule.id, e)
        failed = DerivationStep(
            expression=req.expression,
            rule_name=f"Rule failed: {rule.name}",
            explanation=str(e),
        )
        raise HTTPException(status_code=422, detail=failed.as_dict())
    return step.as_dict()


@app.post("/api/solve", response_model=SolveResponse)
def solve(req: SolveRequest):
    try:
        result = solve_value_function(req.gamma, req.transition_matrix, req.rewards)
    except SolverError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Unexpected solver failure")
        raise HTTPException(status_code=500, detail=f"Solver error: {str(e)}")

    return result
