import bleach
from rest_framework import serializers

from clinic.services.phone import validation_error as phone_error


def clean(value):
    return bleach.clean((value or '').strip(), strip=True)


class CleanCharField(serializers.CharField):
    """CharField that strips any markup from the submitted text."""

    def to_internal_value(self, data):
        return clean(super().to_internal_value(data))


class PhoneField(serializers.CharField):
    def __init__(self, **kwargs):
        kwargs.setdefault('max_length', 20)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = clean(super().to_internal_value(data))
        if value:
            error = phone_error(value)
            if error:
                raise serializers.ValidationError(error)
        return value


class PageQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class DateRangeQuerySerializer(serializers.Serializer):
    startDate = serializers.DateField(required=False)
    endDate = serializers.DateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get('startDate'), attrs.get('endDate')
        if start and end and start > end:
            raise serializers.ValidationError({'endDate': 'End date must not be before start date'})
        return attrs
