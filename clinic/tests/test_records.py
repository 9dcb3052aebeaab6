import datetime as dt

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone

from clinic.exceptions import InvalidState
from clinic.models import Insurance, LabTest, MedicalDocument, Medication, Prescription
from clinic.services import storage
from clinic.views.records import advance_lab_test

pytestmark = pytest.mark.django_db

PNG = b'\x89PNG\r\n\x1a\n' + b'\x00' * 64


@pytest.fixture
def media(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path
    return tmp_path


@pytest.fixture
def medication(db):
    return Medication.objects.create(name='Atorvastatin', ndc_number='0071-0155-23', strength='20mg')


@pytest.fixture
def policy(patient):
    return Insurance.objects.create(
        patient=patient, provider_name='Star Health', policy_number='POL-100',
        effective_date=dt.date(2024, 1, 1),
    )


def prescribe(api, patient, doctor, **extra):
    body = {'patientId': patient.id, 'doctorId': doctor.id, 'dosage': '1 tablet', 'frequency': 'Once daily'}
    body.update(extra)
    return api.post('/api/prescriptions', body, format='json')


def test_prescription_takes_name_from_medication(api, patient, doctor, medication):
    r = prescribe(api, patient, doctor, medicationId=medication.id, durationDays=30)
    assert r.status_code == 201
    assert r.data['data']['medicationName'] == 'Atorvastatin'
    assert r.data['data']['durationDescription'] == '30 days'
    assert r.data['data']['doctorName'] == 'Dr. Anjali Verma'


def test_prescription_needs_a_medication(api, patient, doctor):
    r = prescribe(api, patient, doctor)
    assert r.status_code == 400
    assert 'medicationName' in r.data['error']['message']


def test_prescription_dates_are_ordered(api, patient, doctor):
    r = prescribe(api, patient, doctor, medicationName='Paracetamol', startDate='2024-02-10', endDate='2024-02-01')
    assert r.status_code == 400
    assert 'endDate' in r.data['error']['message']


def test_prescription_for_unknown_patient(api, patient, doctor):
    r = api.post(
        '/api/prescriptions',
        {'patientId': 9999, 'doctorId': doctor.id, 'medicationName': 'Paracetamol', 'dosage': '1', 'frequency': 'daily'},
        format='json',
    )
    assert r.status_code == 404


def test_active_prescription_filter(api, patient, doctor):
    prescribe(api, patient, doctor, medicationName='Paracetamol')
    prescribe(api, patient, doctor, medicationName='Ibuprofen', isActive=False)
    r = api.get('/api/prescriptions', {'active': 'true'})
    assert [p['medicationName'] for p in r.data['data']] == ['Paracetamol']
    r = api.get('/api/prescriptions', {'active': 'false'})
    assert [p['medicationName'] for p in r.data['data']] == ['Ibuprofen']
    assert len(api.get('/api/prescriptions').data['data']) == 2


def test_medication_in_use_cannot_be_deleted(api, patient, doctor, medication):
    prescribe(api, patient, doctor, medicationId=medication.id)
    r = api.delete(f'/api/medications/{medication.id}')
    assert r.status_code == 409
    assert Prescription.objects.count() == 1


def test_duplicate_ndc_number(api, medication):
    r = api.post('/api/medications', {'name': 'Copy', 'ndcNumber': medication.ndc_number}, format='json')
    assert r.status_code == 400


def test_insurance_dates_and_uniqueness(api, patient, policy):
    body = {
        'patientId': patient.id, 'providerName': 'Acme', 'policyNumber': 'POL-200',
        'effectiveDate': '2024-06-01', 'expirationDate': '2024-01-01',
    }
    assert api.post('/api/insurance', body, format='json').status_code == 400
    body.update(expirationDate='2025-06-01', policyNumber=policy.policy_number)
    assert api.post('/api/insurance', body, format='json').status_code == 400
    body.update(policyNumber='POL-200', coveragePercentage='80.00')
    r = api.post('/api/insurance', body, format='json')
    assert r.status_code == 201
    assert r.data['data']['coveragePercentage'] == '80.00'


def test_card_upload_replaces_previous_file(api, policy, media):
    url = f'/api/insurance/{policy.id}/card'
    first = api.post(url, {'side': 'front', 'file': SimpleUploadedFile('card.png', PNG, 'image/png')}, format='multipart')
    assert first.status_code == 200
    policy.refresh_from_db()
    old_path = policy.front_card_image
    assert old_path.startswith(f'uploads/insurance/{policy.id}/')
    assert (media / old_path).exists()
    assert policy.documents_uploaded_at is not None

    api.post(url, {'side': 'front', 'file': SimpleUploadedFile('card2.png', PNG, 'image/png')}, format='multipart')
    policy.refresh_from_db()
    assert policy.front_card_image != old_path
    assert not (media / old_path).exists()

    removed = api.delete(f'{url}?side=front')
    assert removed.data['data']['frontCardImage'] is None
    assert not any(media.rglob('*.png'))


def test_card_upload_rejects_documents(api, policy, media):
    r = api.post(
        f'/api/insurance/{policy.id}/card',
        {'side': 'back', 'file': SimpleUploadedFile('card.pdf', b'%PDF-1.4', 'application/pdf')},
        format='multipart',
    )
    assert r.status_code == 400
    assert 'file' in r.data['error']['message']


def test_storage_validation(settings):
    settings.UPLOAD_MAX_MB = 1
    big = SimpleUploadedFile('scan.pdf', b'x' * (1024 * 1024 + 1))
    assert storage.validation_error(big, settings.ALLOWED_DOCUMENT_EXTENSIONS) == 'File size cannot exceed 1MB'
    assert storage.validate_document(SimpleUploadedFile('scan.pdf', b'%PDF'))
    assert not storage.validate_image(SimpleUploadedFile('scan.pdf', b'%PDF'))
    assert not storage.validate_image(SimpleUploadedFile('empty.png', b''))


def test_delete_missing_file_is_quiet(media):
    assert storage.delete('uploads/nothing/here.png') is False
    assert storage.delete('') is False


def upload_document(api, patient, name='report.pdf', content=b'%PDF-1.4 scan', **extra):
    body = {'patientId': patient.id, 'title': 'Chest X-ray report', 'documentType': 'xray',
            'file': SimpleUploadedFile(name, content, 'application/pdf')}
    body.update(extra)
    return api.post('/api/documents', body, format='multipart')


def test_document_upload_and_delete(api, patient, media):
    r = upload_document(api, patient, tags='chest, 2024')
    assert r.status_code == 201
    data = r.data['data']
    assert data['fileName'] == 'report.pdf'
    assert data['isPdf'] and not data['isImage']
    assert data['fileSizeFormatted'] == '13 B'
    assert data['tags'] == ['chest', '2024']
    assert data['uploadedBy'] == 'admin1'
    document = MedicalDocument.objects.get()
    assert document.file_path.startswith(f'uploads/documents/{patient.id}/')
    assert (media / document.file_path).exists()

    listed = api.get('/api/documents', {'patientId': patient.id})
    assert [d['id'] for d in listed.data['data']] == [document.id]

    assert api.delete(f'/api/documents/{document.id}').status_code == 204
    assert not (media / document.file_path).exists()


def test_document_with_unknown_extension_is_rejected(api, patient, media):
    r = upload_document(api, patient, name='setup.exe', content=b'MZ')
    assert r.status_code == 400
    assert 'file' in r.data['error']['message']
    assert not MedicalDocument.objects.exists()
    assert not any(media.rglob('*.exe'))


def test_document_lab_test_must_belong_to_patient(api, patient, other_patient, media):
    test = LabTest.objects.create(patient=other_patient, test_code='CBC', test_name='Complete blood count')
    r = upload_document(api, patient, labTestId=test.id)
    assert r.status_code == 400
    assert 'labTestId' in r.data['error']['message']
    assert not any(media.rglob('*.pdf'))


def test_archived_documents_leave_the_chart(api, patient, media):
    document_id = upload_document(api, patient).data['data']['id']
    archived = api.post(f'/api/documents/{document_id}/archive')
    assert archived.data['data']['isArchived'] is True
    assert archived.data['data']['archivedAt'] is not None
    assert api.get('/api/documents').data['data'] == []
    assert len(api.get('/api/documents', {'archived': 'true'}).data['data']) == 1

    restored = api.delete(f'/api/documents/{document_id}/archive')
    assert restored.data['data']['isArchived'] is False


def test_deleting_a_patient_removes_chart_files(api, patient, doctor, media):
    upload_document(api, patient)
    test = api.post(
        '/api/lab-tests', {'patientId': patient.id, 'doctorId': doctor.id, 'testCode': 'LFT', 'testName': 'Liver panel'},
        format='json',
    ).data['data']
    api.post(
        f"/api/lab-tests/{test['id']}/results",
        {'status': 'completed', 'file': SimpleUploadedFile('lft.pdf', b'%PDF-1.4', 'application/pdf')},
        format='multipart',
    )
    assert len(list(media.rglob('*.pdf'))) == 2

    assert api.delete(f'/api/patients/{patient.id}').status_code == 204
    assert not MedicalDocument.objects.exists()
    assert not LabTest.objects.exists()
    assert not any(media.rglob('*.pdf'))


def test_lab_test_lifecycle(api, patient, doctor):
    r = api.post(
        '/api/lab-tests',
        {'patientId': patient.id, 'doctorId': doctor.id, 'testCode': 'CBC', 'testName': 'Complete blood count',
         'cost': '45.00', 'priority': 'urgent'},
        format='json',
    )
    assert r.status_code == 201
    test = r.data['data']
    assert test['status'] == 'ordered'
    assert test['doctorName'] == 'Dr. Anjali Verma'
    assert test['cost'] == '45.00'
    url = f"/api/lab-tests/{test['id']}/results"

    collected = api.post(url, {'status': 'collected'}, format='json').data['data']
    assert collected['collectedDate'] is not None
    assert collected['completedDate'] is None

    done = api.post(url, {'status': 'completed', 'results': 'Hb 9.1 g/dL', 'isAbnormal': True}, format='json')
    assert done.status_code == 200
    assert done.data['data']['completedDate'] is not None
    assert done.data['data']['isAbnormal'] is True
    assert done.data['data']['statusLabel'] == 'Completed'

    assert api.post(url, {'status': 'cancelled'}, format='json').status_code == 400


def test_lab_test_cannot_move_backwards(patient):
    test = LabTest.objects.create(patient=patient, test_code='CBC', test_name='Complete blood count')
    advance_lab_test(test, LabTest.STATUS_IN_PROGRESS)
    assert test.collected_date is not None
    with pytest.raises(InvalidState):
        advance_lab_test(test, LabTest.STATUS_COLLECTED)
    advance_lab_test(test, LabTest.STATUS_CANCELLED)
    assert test.completed_date is None


def test_overdue_lab_tests(api, patient):
    week_ago = timezone.now() - dt.timedelta(days=8)
    stale = LabTest.objects.create(patient=patient, test_code='TSH', test_name='Thyroid panel', ordered_date=week_ago)
    LabTest.objects.create(patient=patient, test_code='CBC', test_name='Complete blood count')
    LabTest.objects.create(
        patient=patient, test_code='LFT', test_name='Liver panel', ordered_date=week_ago,
        status=LabTest.STATUS_COMPLETED,
    )
    r = api.get('/api/lab-tests', {'overdue': 'true'})
    assert [t['id'] for t in r.data['data']] == [stale.id]
    assert r.data['data'][0]['isOverdue'] is True
