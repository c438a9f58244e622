# family_finance/api/assets.py
from decimal import Decimal

from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import NotFoundError
from ..extensions import db
from ..models import Asset, AssetType
from ..services.audit import log_action
from ..utils.helpers import family_id, json_body, parse_amount, parse_date, parse_enum, parse_str
from . import api

MAX_VALUE = 999_999_999_999


def _get_asset(fid: int, asset_id: int) -> Asset:
    asset = db.session.query(Asset).filter_by(id=asset_id, family_id=fid).first()
    if not asset:
        raise NotFoundError("Asset not found")
    return asset


def _apply(asset: Asset, data: dict, *, creating: bool) -> None:
    if creating or "name" in data:
        asset.name = parse_str(data.get("name"), "name", max_len=100)
    if creating or "type" in data:
        asset.type = parse_enum(AssetType, data.get("type"), "type")
    if creating or "value" in data:
        asset.value = parse_amount(data.get("value"), "value", allow_zero=True, max_value=MAX_VALUE)
    if creating or "description" in data:
        asset.description = parse_str(data.get("description"), "description", required=False)
    if creating or "acquisition_date" in data:
        asset.acquisition_date = parse_date(data.get("acquisition_date"), "acquisition_date", required=False)


@api.route("/assets", methods=["GET"])
@login_required
def assets_list():
    fid = family_id()
    q = db.session.query(Asset).filter_by(family_id=fid)
    atype = parse_enum(AssetType, request.args.get("type"), "type", required=False)
    if atype:
        q = q.filter(Asset.type == atype)
    assets = q.order_by(Asset.value.desc(), Asset.name.asc()).all()
    total = sum((Decimal(a.value) for a in assets), Decimal(0))
    return jsonify({"assets": [a.to_dict() for a in assets], "total_value": float(total)})


@api.route("/assets", methods=["POST"])
@login_required
def assets_create():
    fid = family_id()
    asset = Asset(family_id=fid)
    _apply(asset, json_body(), creating=True)
    db.session.add(asset)
    db.session.flush()
    log_action(current_user.id, fid, "CREATE_ASSET", "Asset", asset.id,
               {"name": asset.name, "value": float(asset.value)})
    db.session.commit()
    return jsonify({"asset": asset.to_dict()}), 201


@api.route("/assets/<int:asset_id>", methods=["GET"])
@login_required
def assets_get(asset_id: int):
    return jsonify({"asset": _get_asset(family_id(), asset_id).to_dict()})


@api.route("/assets/<int:asset_id>", methods=["PUT"])
@login_required
def assets_update(asset_id: int):
    fid = family_id()
    asset = _get_asset(fid, asset_id)
    data = json_body()
    _apply(asset, data, creating=False)
    log_action(current_user.id, fid, "UPDATE_ASSET", "Asset", asset.id, {"fields": sorted(data.keys())})
    db.session.commit()
    return jsonify({"asset": asset.to_dict()})


@api.route("/assets/<int:asset_id>", methods=["DELETE"])
@login_required
def assets_delete(asset_id: int):
    fid = family_id()
    asset = _get_asset(fid, asset_id)
    log_action(current_user.id, fid, "DELETE_ASSET", "Asset", asset.id, {"name": asset.name})
    db.session.delete(asset)
    db.session.commit()
    return jsonify({"message": "Asset deleted"})
