# family_finance/api/goals.py
from datetime import date
from decimal import Decimal

from flask import jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func, or_

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Family, Goal, GoalContribution, GoalStatus
from ..services.audit import log_action
from ..services.reminders import crossed_milestone, goal_notifications, notify_goal_milestone, raw_progress
from ..utils.helpers import family_id, json_body, parse_amount, parse_date, parse_enum, parse_str
from . import api

MAX_AMOUNT = 999_999_999_999


def _get_goal(fid: int, goal_id: int) -> Goal:
    goal = db.session.query(Goal).filter_by(id=goal_id, family_id=fid).first()
    if not goal:
        raise NotFoundError("Goal not found")
    return goal


def _future_deadline(value):
    deadline = parse_date(value, "deadline", required=False)
    if deadline and deadline <= date.today():
        raise ValidationError("Deadline must be in the future", field="deadline")
    return deadline


def _sync_status(goal: Goal) -> None:
    """ACTIVE <-> COMPLETED follows current_amount vs target; CANCELLED is left alone."""
    reached = Decimal(goal.current_amount or 0) >= Decimal(goal.target_amount or 0)
    if goal.status == GoalStatus.ACTIVE and reached:
        goal.status = GoalStatus.COMPLETED
    elif goal.status == GoalStatus.COMPLETED and not reached:
        goal.status = GoalStatus.ACTIVE


@api.route("/goals", methods=["GET"])
@login_required
def goals_list():
    fid = family_id()
    q = db.session.query(Goal).filter_by(family_id=fid)
    status = parse_enum(GoalStatus, request.args.get("status"), "status", required=False)
    if status:
        q = q.filter(Goal.status == status)
    search = (request.args.get("search") or "").strip().lower()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(func.lower(Goal.name).like(like), func.lower(func.coalesce(Goal.description, "")).like(like)))
    goals = q.order_by(Goal.created_at.desc(), Goal.id.desc()).all()

    total_target = sum((Decimal(g.target_amount) for g in goals), Decimal(0))
    total_current = sum((Decimal(g.current_amount) for g in goals), Decimal(0))
    return jsonify({
        "goals": [g.to_dict(with_contributions=False) for g in goals],
        "summary": {
            "total": len(goals),
            "active": sum(1 for g in goals if g.status == GoalStatus.ACTIVE),
            "completed": sum(1 for g in goals if g.status == GoalStatus.COMPLETED),
            "total_target": float(total_target),
            "total_current": float(total_current),
        },
    })


@api.route("/goals/notifications", methods=["GET"])
@login_required
def goals_notifications():
    """Deadline, progress and inactivity hints for the family's active goals."""
    family = db.session.get(Family, family_id())
    return jsonify(goal_notifications(family))


@api.route("/goals", methods=["POST"])
@login_required
def goals_create():
    fid = family_id()
    data = json_body()
    goal = Goal(
        family_id=fid,
        name=parse_str(data.get("name"), "name", max_len=100),
        description=parse_str(data.get("description"), "description", required=False),
        target_amount=parse_amount(data.get("target_amount"), "target_amount", max_value=MAX_AMOUNT),
        current_amount=Decimal("0"),
        deadline=_future_deadline(data.get("deadline")),
        status=GoalStatus.ACTIVE,
    )
    db.session.add(goal)
    db.session.flush()
    log_action(current_user.id, fid, "CREATE_GOAL", "Goal", goal.id,
               {"name": goal.name, "target_amount": float(goal.target_amount)})
    db.session.commit()
    return jsonify({"goal": goal.to_dict()}), 201


@api.route("/goals/<int:goal_id>", methods=["GET"])
@login_required
def goals_get(goal_id: int):
    return jsonify({"goal": _get_goal(family_id(), goal_id).to_dict()})


@api.route("/goals/<int:goal_id>", methods=["PUT"])
@login_required
def goals_update(goal_id: int):
    fid = family_id()
    goal = _get_goal(fid, goal_id)
    data = json_body()

    if "name" in data:
        goal.name = parse_str(data.get("name"), "name", max_len=100)
    if "description" in data:
        goal.description = parse_str(data.get("description"), "description", required=False)
    if "target_amount" in data:
        goal.target_amount = parse_amount(data.get("target_amount"), "target_amount", max_value=MAX_AMOUNT)
    if "deadline" in data:
        goal.deadline = _future_deadline(data.get("deadline"))
    if "status" in data:
        goal.status = parse_enum(GoalStatus, data.get("status"), "status")
    _sync_status(goal)

    log_action(current_user.id, fid, "UPDATE_GOAL", "Goal", goal.id, {"fields": sorted(data.keys())})
    db.session.commit()
    return jsonify({"goal": goal.to_dict()})


@api.route("/goals/<int:goal_id>", methods=["DELETE"])
@login_required
def goals_delete(goal_id: int):
    fid = family_id()
    goal = _get_goal(fid, goal_id)
    log_action(current_user.id, fid, "DELETE_GOAL", "Goal", goal.id, {"name": goal.name})
    db.session.delete(goal)
    db.session.commit()
    return jsonify({"message": "Goal deleted"})


@api.route("/goals/<int:goal_id>/contribute", methods=["POST"])
@login_required
def goals_contribute(goal_id: int):
    fid = family_id()
    goal = _get_goal(fid, goal_id)
    if goal.status != GoalStatus.ACTIVE:
        raise BusinessRuleError("Contributions can only be added to active goals", "GOAL_NOT_ACTIVE")
    data = json_body()
    amount = parse_amount(data.get("amount"), max_value=MAX_AMOUNT)

    contribution = GoalContribution(
        goal_id=goal.id,
        user_id=current_user.id,
        amount=amount,
        description=parse_str(data.get("description"), "description", required=False),
        date=parse_date(data.get("date"), required=False) or date.today(),
    )
    db.session.add(contribution)
    before = raw_progress(goal)
    goal.current_amount = Decimal(goal.current_amount or 0) + amount
    _sync_status(goal)
    db.session.flush()
    milestone = crossed_milestone(before, raw_progress(goal))
    if milestone:
        notify_goal_milestone(goal, db.session.get(Family, fid), milestone)

    log_action(current_user.id, fid, "CREATE_CONTRIBUTION", "GoalContribution", contribution.id, {
        "goal_id": goal.id, "goal": goal.name, "amount": float(amount),
    })
    db.session.commit()
    db.session.refresh(goal)
    return jsonify({
        "contribution": contribution.to_dict(),
        "goal": goal.to_dict(),
        "completed": goal.status == GoalStatus.COMPLETED,
        "milestone": milestone,
    }), 201


@api.route("/goals/<int:goal_id>/contributions/<int:contribution_id>", methods=["DELETE"])
@login_required
def goals_contribution_delete(goal_id: int, contribution_id: int):
    fid = family_id()
    goal = _get_goal(fid, goal_id)
    contribution = db.session.query(GoalContribution).filter_by(id=contribution_id, goal_id=goal.id).first()
    if not contribution:
        raise NotFoundError("Contribution not found")

    amount = Decimal(contribution.amount)
    goal.current_amount = max(Decimal(goal.current_amount or 0) - amount, Decimal(0))
    _sync_status(goal)
    db.session.delete(contribution)
    log_action(current_user.id, fid, "DELETE_CONTRIBUTION", "GoalContribution", contribution_id, {
        "goal_id": goal.id, "amount": float(amount),
    })
    db.session.commit()
    db.session.refresh(goal)
    return jsonify({"message": "Contribution deleted", "goal": goal.to_dict()})
