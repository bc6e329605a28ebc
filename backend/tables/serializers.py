from rest_framework import serializers


class PartySizeSerializer(serializers.Serializer):
    party_size = serializers.IntegerField(min_value=1)


class MergeTablesSerializer(serializers.Serializer):
    table_ids = serializers.ListField(child=serializers.UUIDField(), min_length=2)
    new_capacity = serializers.IntegerField(min_value=1, required=False, allow_null=True)

    def validate_table_ids(self, value):
        if len(set(value)) != len(value):
            raise serializers.ValidationError("Each table can only be listed once.")
        return value
