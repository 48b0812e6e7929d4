from sqlmodel import select

from georeport.models.enums import NotificationType, Permission
from georeport.models.estado import Estado
from georeport.models.notification import Notification
from georeport.models.profile import Profile
from georeport.models.role import Role, UserRole


class TestUsers:
    def test_me_lists_permissions(self, client, admin_headers):
        body = client.get("/users/me", headers=admin_headers).json()

        assert body["display_name"] == "Ada Admin"
        assert Permission.eliminar_reporte.value in body["permissions"]

    def test_member_has_no_permissions(self, client, member_headers):
        assert client.get("/users/me", headers=member_headers).json()["permissions"] == []
        assert client.get("/users/", headers=member_headers).status_code == 403

    def test_create_user_normalizes_email(self, client, admin_headers):
        response = client.post("/users/", json={"email": "New.User@Example.com"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["email"] == "new.user@example.com"

    def test_duplicate_email(self, client, admin_headers, member):
        response = client.post("/users/", json={"email": "member@example.com"}, headers=admin_headers)

        assert response.status_code == 400

    def test_suspicious_email(self, client, admin_headers):
        response = client.post("/users/", json={"email": "a..b@example.com"}, headers=admin_headers)

        assert response.status_code == 422

    def test_self_edit_does_not_notify(self, client, session, member, member_headers):
        response = client.patch(f"/users/{member.id}", json={"last_name": "Power"}, headers=member_headers)

        assert response.status_code == 200
        assert session.exec(select(Notification)).all() == []

    def test_editing_someone_else_requires_permission(self, client, admin, member_headers):
        response = client.patch(f"/users/{admin.id}", json={"last_name": "X"}, headers=member_headers)

        assert response.status_code == 403

    def test_edit_by_admin_notifies_owner(self, client, session, member, admin_headers):
        client.patch(f"/users/{member.id}", json={"first_name": "Maxi"}, headers=admin_headers)

        notification = session.exec(select(Notification)).one()
        assert notification.user_id == member.id
        assert notification.type == NotificationType.perfil_actualizado

    def test_delete_user(self, client, session, member, admin_headers, make_user):
        user = make_user("victim@example.com", [Permission.ver_reporte])

        assert client.delete(f"/users/{user.id}", headers=admin_headers).status_code == 200

        session.expire_all()
        stored = session.get(Profile, user.id)
        assert stored.deleted_at is not None
        assert stored.asset is False
        links = session.exec(select(UserRole).where(UserRole.user_id == user.id)).all()
        assert all(link.deleted_at is not None for link in links)

    def test_cannot_delete_self(self, client, admin, admin_headers):
        assert client.delete(f"/users/{admin.id}", headers=admin_headers).status_code == 400

    def test_deactivated_user_is_locked_out(self, client, member, member_headers, admin_headers):
        client.post(f"/users/{member.id}/toggle-status", headers=admin_headers)

        assert client.get("/users/me", headers=member_headers).status_code == 403

    def test_bulk_toggle_reports_self_as_failure(self, client, admin, member, admin_headers):
        response = client.post(
            "/users/bulk",
            json={"ids": [str(admin.id), str(member.id)], "action": "toggle_status"},
            headers=admin_headers,
        )

        body = response.json()
        assert body["succeeded"] == 1
        assert {"id": str(admin.id), "ok": False, "error": "You cannot deactivate your own user"} in body["results"]

    def test_assign_and_remove_role(self, client, session, admin, member, admin_headers, member_headers):
        role = Role(nombre="Inspector", descripcion="Revisa reportes", permisos=["ver_reporte"], created_by=admin.id)
        session.add(role)
        session.commit()

        assigned = client.post(f"/users/{member.id}/roles", json={"role_id": str(role.id)}, headers=admin_headers)
        assert assigned.json()["role"] == ["Inspector"]
        assert client.get("/users/me", headers=member_headers).json()["permissions"] == ["ver_reporte"]

        again = client.post(f"/users/{member.id}/roles", json={"role_id": str(role.id)}, headers=admin_headers)
        assert again.status_code == 400

        removed = client.delete(f"/users/{member.id}/roles/{role.id}", headers=admin_headers)
        assert removed.json()["role"] == []
        assert client.get("/users/me", headers=member_headers).json()["permissions"] == []


class TestRoles:
    def test_create_role_with_permissions(self, client, admin_headers):
        response = client.post(
            "/roles/",
            json={"nombre": "Operador", "descripcion": "Atiende reportes", "permisos": ["ver_reporte", "editar_reporte"]},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["permisos"] == ["ver_reporte", "editar_reporte"]

    def test_unknown_permission_is_rejected(self, client, admin_headers):
        response = client.post(
            "/roles/",
            json={"nombre": "Operador", "descripcion": "x", "permisos": ["fly"]},
            headers=admin_headers,
        )

        assert response.status_code == 422

    def test_inactive_role_grants_nothing(self, client, session, make_user, token_for):
        user = make_user("inactive@example.com", [Permission.ver_reporte])
        role = session.exec(select(Role).where(Role.nombre == "role-inactive@example.com")).one()
        role.activo = False
        session.add(role)
        session.commit()

        headers = {"Authorization": f"Bearer {token_for(user)}"}
        assert client.get("/users/me", headers=headers).json()["permissions"] == []

    def test_delete_notifies_creator(self, client, session, admin_headers, member):
        role = Role(nombre="Temporal", descripcion="x", created_by=member.id)
        session.add(role)
        session.commit()

        client.delete(f"/roles/{role.id}", headers=admin_headers)

        notification = session.exec(select(Notification)).one()
        assert notification.type == NotificationType.rol_eliminado

    def test_bulk_delete(self, client, session, admin, admin_headers):
        roles = [Role(nombre=f"R{i}", descripcion="x", created_by=admin.id) for i in range(2)]
        session.add_all(roles)
        session.commit()

        response = client.post(
            "/roles/bulk",
            json={"ids": [str(r.id) for r in roles], "action": "delete"},
            headers=admin_headers,
        )

        assert response.json()["succeeded"] == 2


class TestEstados:
    def test_descripcion_is_required(self, client, admin_headers):
        response = client.post("/estados/", json={"nombre": "Abierto"}, headers=admin_headers)

        assert response.status_code == 422

    def test_bulk_delete_notifies_creators(self, client, session, admin_headers, member, make_estado):
        estados = [make_estado(member, nombre=f"E{i}") for i in range(2)]

        response = client.post(
            "/estados/bulk",
            json={"ids": [str(e.id) for e in estados], "action": "delete"},
            headers=admin_headers,
        )

        assert response.json()["succeeded"] == 2
        notifications = session.exec(select(Notification)).all()
        assert [n.type for n in notifications] == [NotificationType.estado_eliminado] * 2

        session.expire_all()
        assert all(session.get(Estado, e.id).activo is False for e in estados)

    def test_only_active_filter(self, client, admin, admin_headers, make_estado):
        make_estado(admin, nombre="Abierto")
        make_estado(admin, nombre="Archivado", activo=False)

        listed = client.get("/estados/", params={"only_active": True}, headers=admin_headers).json()

        assert [e["nombre"] for e in listed] == ["Abierto"]
