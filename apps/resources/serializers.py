"""Serializers for bookable resources."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Resource, ResourceIssue


class ResourceSerializer(serializers.ModelSerializer):
    has_key = serializers.SerializerMethodField()

    class Meta:
        model = Resource
        fields = [
            "id",
            "name",
            "description",
            "location",
            "category",
            "capacity",
            "status",
            "requires_special_approval",
            "has_key",
        ]
        read_only_fields = fields

    def get_has_key(self, obj: Resource) -> bool:
        return hasattr(obj, "key")


class ResourceIssueSerializer(serializers.ModelSerializer):
    class Meta:
        model = ResourceIssue
        fields = [
            "id",
            "resource",
            "subject",
            "description",
            "issue_type",
            "status",
            "starts_at",
            "ends_at",
            "resolved_at",
        ]
        read_only_fields = ["id", "status", "resolved_at"]
