"""
Workflows models serializers
"""

from rest_framework import serializers


class StatusSerializer(serializers.Serializer):
    """Status serializer"""

    name = serializers.CharField()
    is_open = serializers.BooleanField()
    sortkey = serializers.IntegerField()


class TransitionSerializer(serializers.Serializer):
    """Transition serializer"""

    old = serializers.CharField(allow_null=True)
    new = serializers.CharField()
    require_comment = serializers.BooleanField()


class WorkflowSerializer(serializers.Serializer):
    """Workflow serializer"""

    name = serializers.CharField()
    description = serializers.CharField()
    priority = serializers.IntegerField()
    duplicate_or_move_status = serializers.CharField()
    statuses = StatusSerializer(many=True)
    transitions = TransitionSerializer(many=True)
