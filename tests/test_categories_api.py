import csv
import io
import uuid
from unittest.mock import patch

from sqlmodel import select

from georeport.models.audit import Actividad, CambioHistorial
from georeport.models.category import Category
from georeport.models.enums import ActivityType, NotificationType, OperationType
from georeport.models.notification import Notification
from georeport.utils.records import soft_delete


class TestCategoryCrud:
    def test_create_and_list(self, client, admin_headers):
        response = client.post(
            "/categories/",
            json={"nombre": "  Alumbrado  ", "descripcion": "Luminarias"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["nombre"] == "Alumbrado"

        listed = client.get("/categories/", headers=admin_headers).json()
        assert [c["nombre"] for c in listed] == ["Alumbrado"]

    def test_create_requires_permission(self, client, member_headers):
        response = client.post("/categories/", json={"nombre": "Alumbrado"}, headers=member_headers)

        assert response.status_code == 403

    def test_requires_token(self, client):
        assert client.get("/categories/").status_code in (401, 403)

    def test_invalid_color_is_rejected(self, client, admin_headers):
        response = client.post(
            "/categories/",
            json={"nombre": "Alumbrado", "color": "blue"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    def test_update_records_change(self, client, session, admin, admin_headers, make_category):
        category = make_category(admin)

        response = client.patch(
            f"/categories/{category.id}",
            json={"color": "#FF0000"},
            headers=admin_headers,
        )
        assert response.status_code == 200

        cambio = session.exec(
            select(CambioHistorial).where(CambioHistorial.registro_id == str(category.id))
        ).one()
        assert cambio.operation_type == OperationType.UPDATE
        assert cambio.campos_modificados == ["color"]

    def test_toggle_status(self, client, admin, admin_headers, make_category):
        category = make_category(admin)

        response = client.post(f"/categories/{category.id}/toggle-status", headers=admin_headers)

        assert response.json()["activo"] is False

    def test_unknown_and_malformed_ids(self, client, admin_headers):
        assert client.get(f"/categories/{uuid.uuid4()}", headers=admin_headers).status_code == 404
        assert client.get("/categories/not-a-uuid", headers=admin_headers).status_code == 400


class TestCategoryDelete:
    def test_soft_delete_hides_record(self, client, session, admin, admin_headers, make_category):
        category = make_category(admin)

        assert client.delete(f"/categories/{category.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/categories/{category.id}", headers=admin_headers).status_code == 404

        session.expire_all()
        stored = session.get(Category, category.id)
        assert stored.deleted_at is not None
        assert stored.activo is False

    def test_delete_notifies_creator(self, client, session, admin_headers, member, make_category):
        category = make_category(member, nombre="Parques")

        client.delete(f"/categories/{category.id}", headers=admin_headers)

        notification = session.exec(select(Notification).where(Notification.user_id == member.id)).one()
        assert notification.type == NotificationType.categoria_eliminada
        assert "Parques" in notification.message

    def test_own_deletion_sends_nothing(self, client, session, admin, admin_headers, make_category):
        category = make_category(admin)

        client.delete(f"/categories/{category.id}", headers=admin_headers)

        assert session.exec(select(Notification)).all() == []


class TestCategoryBulk:
    def test_bulk_delete_updates_each_record(self, client, session, admin, admin_headers, make_category):
        categories = [make_category(admin, nombre=f"Cat {i}") for i in range(3)]
        ids = [str(c.id) for c in categories]

        with patch("georeport.routers.categories.soft_delete", wraps=soft_delete) as spy:
            response = client.post(
                "/categories/bulk",
                json={"ids": ids, "action": "delete"},
                headers=admin_headers,
            )

        assert response.status_code == 200
        body = response.json()
        assert body["succeeded"] == 3
        assert body["failed"] == 0
        assert spy.call_count == 3

        cambios = session.exec(
            select(CambioHistorial).where(CambioHistorial.operation_type == OperationType.UPDATE)
        ).all()
        assert sorted(c.registro_id for c in cambios) == sorted(ids)
        assert all("deleted_at" in c.campos_modificados for c in cambios)

        session.expire_all()
        for category in categories:
            assert session.get(Category, category.id).deleted_at is not None

    def test_partial_failure_keeps_earlier_successes(self, client, session, admin, admin_headers, make_category):
        category = make_category(admin)
        missing = str(uuid.uuid4())

        response = client.post(
            "/categories/bulk",
            json={"ids": [str(category.id), missing], "action": "delete"},
            headers=admin_headers,
        )

        body = response.json()
        assert body["succeeded"] == 1
        assert body["failed"] == 1
        assert {"id": missing, "ok": False, "error": "Record not found"} in body["results"]
        assert body["message"] == "delete applied to 1 of 2 categories"

    def test_bulk_toggle(self, client, session, admin, admin_headers, make_category):
        active = make_category(admin, nombre="On")
        inactive = make_category(admin, nombre="Off", activo=False)

        client.post(
            "/categories/bulk",
            json={"ids": [str(active.id), str(inactive.id)], "action": "toggle_status"},
            headers=admin_headers,
        )

        session.expire_all()
        assert session.get(Category, active.id).activo is False
        assert session.get(Category, inactive.id).activo is True

    def test_unsupported_action(self, client, admin, admin_headers, make_category):
        category = make_category(admin)

        response = client.post(
            "/categories/bulk",
            json={"ids": [str(category.id)], "action": "change_estado"},
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_empty_selection_is_rejected(self, client, admin_headers):
        response = client.post("/categories/bulk", json={"ids": [], "action": "delete"}, headers=admin_headers)

        assert response.status_code == 422

    def test_bulk_requires_permission(self, client, admin, member_headers, make_category):
        category = make_category(admin)

        response = client.post(
            "/categories/bulk",
            json={"ids": [str(category.id)], "action": "delete"},
            headers=member_headers,
        )

        assert response.status_code == 403


def test_export_csv(client, session, admin, admin_headers, make_category):
    make_category(admin, nombre="Limpieza", descripcion='Calles "sucias", veredas')

    response = client.get("/categories/export", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "categorias_" in response.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == ["Nombre", "Descripción", "Color", "Icono", "Activo", "Fecha de Creación"]
    assert rows[1][:2] == ["Limpieza", 'Calles "sucias", veredas']

    actividad = session.exec(select(Actividad)).one()
    assert actividad.activity_type == ActivityType.EXPORT
    assert actividad.metadatos["records_count"] == 1
