"""
Profile routes for the logged-in user
"""
from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from routes.auth import commit_or_raise, request_data
from utils.errors import ValidationError
from utils.profile import RegistrationProfile

profile_bp = Blueprint('profile', __name__, url_prefix='/profile')


@profile_bp.route('', methods=['GET'])
@login_required
def get_profile():
    return jsonify({"success": True, "user": current_user.to_dict()})


@profile_bp.route('', methods=['PUT'])
@login_required
def update_profile():
    """Update any subset of the profile fields. Email and password are not editable here."""
    profile = RegistrationProfile.from_json(request_data())
    if not profile.provided():
        raise ValidationError("No profile fields to update.")
    profile.apply_to(current_user)
    commit_or_raise('updating profile')
    return jsonify({"success": True, "message": "Profile updated successfully.", "user": current_user.to_dict()})
