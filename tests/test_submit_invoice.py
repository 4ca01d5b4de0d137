import pytest
from pydantic import ValidationError

from app.domain.exceptions import DuplicateInvoiceError, InvoiceValidationError, IssuerNotFoundError
from app.domain.models.invoice import InvoiceState, InvoiceSubmission
from app.domain.models.job import JobKind, JobState
from app.domain.models.operation_log import OperationKind
from app.infrastructure.persistence.models import Factura
from tests.factories import invoice_payload


def submit(pipeline, **overrides):
    return pipeline.submit_use_case().execute(InvoiceSubmission.model_validate(invoice_payload(**overrides)))


class TestSubmitInvoice:
    """Ingreso: registro en `queued` y job encolado, sin esperar al pipeline."""

    def test_creates_queued_invoice_and_job(self, pipeline):
        invoice = submit(pipeline)

        assert invoice.state == InvoiceState.QUEUED
        assert invoice.correlative == "001-001-0000060"
        assert invoice.issuer_ruc == "80012345-1"
        assert invoice.total == 110000
        assert invoice.payload["fecha"] == "2026-02-24T00:00:00.000Z"
        assert len(invoice.fingerprint) == 64

        job = pipeline.job_queue.get(JobKind.PROCESS_INVOICE, invoice.id)
        assert job.state == JobState.WAITING
        assert pipeline.dispatcher.job_ids == [f"factura-{invoice.id}"]

        entries, total = pipeline.logs.list(invoice_id=invoice.id)
        assert total == 1
        assert entries[0].kind == OperationKind.PROCESS_STARTED

    def test_duplicate_references_first_invoice(self, pipeline, db_session):
        first = submit(pipeline)

        with pytest.raises(DuplicateInvoiceError) as exc_info:
            submit(pipeline, fecha="2026-02-24T00:00:00.000400")

        assert exc_info.value.existing.id == first.id
        assert db_session.query(Factura).count() == 1
        assert len(pipeline.dispatcher.dispatched) == 1

    def test_number_padding_does_not_hide_duplicates(self, pipeline):
        submit(pipeline)
        with pytest.raises(DuplicateInvoiceError):
            submit(pipeline, numero=60)

    def test_extra_leading_zeros_do_not_hide_duplicates(self, pipeline):
        submit(pipeline)
        with pytest.raises(DuplicateInvoiceError):
            submit(pipeline, numero="00000060")

    def test_other_number_is_not_a_duplicate(self, pipeline):
        first = submit(pipeline)
        second = submit(pipeline, numero="0000061")
        assert second.id != first.id
        assert second.correlative == "001-001-0000061"

    def test_ruc_without_dash_finds_issuer(self, pipeline):
        invoice = submit(pipeline, ruc="800123451")
        assert invoice.issuer_ruc == "80012345-1"

    def test_payload_overrides_establishment(self, pipeline):
        invoice = submit(pipeline, establecimiento="2", punto="3")
        assert invoice.correlative == "002-003-0000060"

    def test_missing_date_is_stamped_once(self, pipeline):
        payload = invoice_payload()
        del payload["fecha"]
        invoice = pipeline.submit_use_case().execute(InvoiceSubmission.model_validate(payload))
        assert invoice.payload["fecha"].endswith("Z")

    def test_unknown_issuer(self, pipeline):
        with pytest.raises(IssuerNotFoundError):
            submit(pipeline, ruc="99999999-9")

    def test_issuer_without_certificate(self, pipeline):
        pipeline.vault.valid = False
        with pytest.raises(InvoiceValidationError):
            submit(pipeline)

    def test_inactive_issuer(self, pipeline, issuer_row, db_session):
        issuer_row.activo = False
        db_session.commit()
        with pytest.raises(InvoiceValidationError):
            submit(pipeline)


class TestSubmissionModel:
    def test_items_are_required(self):
        payload = invoice_payload(items=[])
        with pytest.raises(ValueError):
            InvoiceSubmission.model_validate(payload)

    def test_extra_fields_are_kept(self):
        submission = InvoiceSubmission.model_validate(invoice_payload(observacion="Entrega en depósito"))
        assert submission.model_dump()["observacion"] == "Entrega en depósito"

    def test_total_prefers_declared_value(self):
        assert InvoiceSubmission.model_validate(invoice_payload(total=5000)).computed_total() == 5000
        assert InvoiceSubmission.model_validate(invoice_payload(totalPago=7000)).computed_total() == 7000

    def test_total_from_items(self):
        items = [{"precioTotal": 1000}, {"precioUnitario": 250, "cantidad": 4}]
        assert InvoiceSubmission.model_validate(invoice_payload(items=items)).computed_total() == 2000

    def test_number_is_normalized(self):
        assert InvoiceSubmission.model_validate(invoice_payload(numero=60)).numero == "0000060"
        assert InvoiceSubmission.model_validate(invoice_payload(numero=" 00000060 ")).numero == "0000060"

    def test_codes_are_normalized(self):
        submission = InvoiceSubmission.model_validate(invoice_payload(establecimiento=2, punto="03"))
        assert (submission.establecimiento, submission.punto) == ("002", "003")

    @pytest.mark.parametrize("overrides", [
        {"numero": "12345678"},
        {"numero": "60A"},
        {"numero": "-60"},
        {"numero": ""},
        {"establecimiento": "1234"},
        {"establecimiento": "0A1"},
        {"punto": "9999"},
        {"punto": "1.0"},
    ])
    def test_malformed_codes_are_rejected(self, overrides):
        with pytest.raises(ValidationError):
            InvoiceSubmission.model_validate(invoice_payload(**overrides))


class TestMalformedSubmissionCreatesNothing:
    def test_no_record_and_no_job(self, pipeline, db_session):
        with pytest.raises(ValidationError):
            submit(pipeline, numero="123456789")

        assert db_session.query(Factura).count() == 0
        assert pipeline.dispatcher.dispatched == []
