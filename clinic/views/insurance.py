"""
Insurance policies and their card images.

Card images are stored through :mod:`clinic.services.storage`; replacing
an image deletes the previous file.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.models import Insurance, Patient
from clinic.serializers.insurance import CardUploadSerializer, InsuranceSerializer
from clinic.services import storage
from clinic.services.formatting import format_insurance

from ..permissions import AdminForDelete, IsStaffRole

CARD_FIELDS = {'front': 'front_card_image', 'back': 'back_card_image'}


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AdminForDelete])
def insurances(request):
    if request.method == 'GET':
        qs = Insurance.objects.all()
        patient_id = request.query_params.get('patientId')
        if patient_id and patient_id.isdigit():
            qs = qs.filter(patient_id=int(patient_id))
        return Response({'ok': True, 'data': [format_insurance(i) for i in qs.order_by('-effective_date', '-id')]})

    s = InsuranceSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    if not Patient.objects.filter(pk=s.validated_data['patient_id']).exists():
        raise NotFound('Patient not found')
    insurance = Insurance.objects.create(**s.validated_data)
    return Response({'ok': True, 'data': format_insurance(insurance)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def insurance_detail(request, pk: int):
    insurance = get_object_or_404(Insurance, pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_insurance(insurance)})
    if request.method == 'PUT':
        s = InsuranceSerializer(insurance, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        if 'patient_id' in s.validated_data and not Patient.objects.filter(pk=s.validated_data['patient_id']).exists():
            raise NotFound('Patient not found')
        for name, value in s.validated_data.items():
            setattr(insurance, name, value)
        insurance.save()
        return Response({'ok': True, 'data': format_insurance(insurance)})

    paths = [insurance.front_card_image, insurance.back_card_image]
    insurance.delete()
    for path in paths:
        storage.delete(path)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
@parser_classes([MultiPartParser, FormParser])
def insurance_card(request, pk: int):
    insurance = get_object_or_404(Insurance, pk=pk)
    if request.method == 'DELETE':
        side = request.query_params.get('side')
        if side not in CARD_FIELDS:
            return Response({'ok': False, 'error': {'code': 'invalid', 'message': 'side must be front or back'}}, status=400)
        field = CARD_FIELDS[side]
        storage.delete(getattr(insurance, field))
        setattr(insurance, field, '')
        insurance.save(update_fields=[field, 'updated_at'])
        return Response({'ok': True, 'data': format_insurance(insurance)})

    s = CardUploadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    field = CARD_FIELDS[s.validated_data['side']]
    path = storage.upload(s.validated_data['file'], f'insurance/{insurance.id}', images_only=True)
    previous = getattr(insurance, field)
    setattr(insurance, field, path)
    insurance.documents_uploaded_at = timezone.now()
    insurance.save(update_fields=[field, 'documents_uploaded_at', 'updated_at'])
    storage.delete(previous)
    return Response({'ok': True, 'data': format_insurance(insurance)})
