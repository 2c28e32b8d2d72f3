from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy.exc import SQLAlchemyError
import logging

from auth import auth_required, get_current_user
from errors import NotFound
from models import db, Notification
from serializers import notification_dict

notifications_bp = Blueprint('notifications', __name__)
logger = logging.getLogger(__name__)

# ============================================
# 建立通知 (內部使用)
# ============================================

def notify(user_ids, notification_type, title, message, exclude_user_id=None):
    """
    為多個使用者建立通知

    在主要操作 commit 之後呼叫,通知失敗只記錄 log,不影響主要操作的結果。

    Returns:
        list: 建立成功的 Notification,失敗時為空 list
    """
    recipients = {uid for uid in user_ids if uid is not None and uid != exclude_user_id}
    if not recipients:
        return []

    notifications = [
        Notification(user_id=uid, type=notification_type, title=title, message=message)
        for uid in sorted(recipients)
    ]

    try:
        db.session.add_all(notifications)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Failed to create {notification_type} notifications: {str(e)}")
        return []

    return notifications

# ============================================
# 1. 取得使用者的通知
# ============================================

@notifications_bp.route('', methods=['GET'])
@jwt_required()
def get_notifications():
    """取得當前使用者的通知 (最新的在前)"""
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    unread_only = request.args.get('unread_only', 'false').lower() == 'true'
    notification_type = request.args.get('type')

    query = Notification.query.filter_by(user_id=current_user.id)

    if unread_only:
        query = query.filter_by(is_read=False)

    if notification_type:
        query = query.filter_by(type=notification_type)

    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    return jsonify({
        'success': True,
        'data': [notification_dict(n) for n in notifications],
        'unread_count': Notification.query.filter_by(user_id=current_user.id, is_read=False).count()
    }), 200

# ============================================
# 2. 標記通知為已讀
# ============================================

def _get_own_notification(user_id, notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        raise NotFound('Notification')
    return notification


@notifications_bp.route('/<int:notification_id>/read', methods=['PATCH'])
@jwt_required()
def mark_notification_read(notification_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    notification = _get_own_notification(current_user.id, notification_id)
    notification.is_read = True
    db.session.commit()

    return jsonify({'success': True, 'message': 'Notification marked as read'}), 200


@notifications_bp.route('/read-all', methods=['PATCH'])
@jwt_required()
def mark_all_notifications_read():
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    updated = Notification.query.filter_by(user_id=current_user.id, is_read=False)\
        .update({'is_read': True})
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'All notifications marked as read',
        'data': {'updated': updated}
    }), 200

# ============================================
# 3. 刪除通知
# ============================================

@notifications_bp.route('/<int:notification_id>', methods=['DELETE'])
@jwt_required()
def delete_notification(notification_id):
    current_user = get_current_user()
    if not current_user:
        return auth_required()

    notification = _get_own_notification(current_user.id, notification_id)
    db.session.delete(notification)
    db.session.commit()

    return jsonify({'success': True, 'message': 'Notification deleted'}), 200
