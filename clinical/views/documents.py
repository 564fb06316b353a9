"""
Medical document views.

``POST /api/documents/upload`` takes a multipart form with ``file``,
``patientId``, ``type`` and an optional ``title``.  Size and content
type limits come from ``UPLOAD_MAX_MB`` and ``ALLOWED_UPLOAD_TYPES``.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinical.models import MedicalDocument
from clinical.permissions import IsClinicalStaff, IsDoctor
from clinical.serializers.patient import DocumentUploadSerializer
from clinical.services.audit import client_ip
from clinical.services.documents import (
    delete_document,
    format_file_size,
    list_hospital_documents,
    list_patient_documents,
    upload_document,
)


def _serialize(doc: MedicalDocument, request=None) -> dict:
    url = doc.file.url if doc.file else None
    if url and request is not None:
        url = request.build_absolute_uri(url)
    return {
        'id': doc.id,
        'patientId': doc.patient_id,
        'title': doc.title,
        'type': doc.doc_type,
        'contentType': doc.content_type,
        'size': format_file_size(doc.file_size),
        'url': url,
        'uploadedBy': doc.uploaded_by.name if doc.uploaded_by_id else None,
        'createdAt': doc.created_at.isoformat(),
    }


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
@parser_classes([MultiPartParser, FormParser])
def document_upload(request):
    s = DocumentUploadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = s.validated_data
    doc = upload_document(
        request.user,
        data['patient_id'],
        file=data['file'],
        title=data.get('title', ''),
        doc_type=data['doc_type'],
        ip=client_ip(request),
    )
    return Response(_serialize(doc, request), status=status.HTTP_201_CREATED)


document_upload.cls.throttle_scope = 'upload'


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def documents(request):
    docs = list_hospital_documents(request.user)
    return Response([dict(_serialize(d, request), patientName=d.patient.name) for d in docs])


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def patient_documents(request, pk: int):
    return Response([_serialize(d, request) for d in list_patient_documents(request.user, pk)])


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsDoctor])
def document_detail(request, pk: int):
    delete_document(request.user, pk, ip=client_ip(request))
    return Response(status=status.HTTP_204_NO_CONTENT)
