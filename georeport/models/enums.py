from enum import Enum


class ActivityType(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    SEARCH = "SEARCH"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"


class OperationType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SELECT = "SELECT"


class NotificationType(str, Enum):
    reporte_asignado = "reporte_asignado"
    reporte_reasignado = "reporte_reasignado"
    reporte_desasignado = "reporte_desasignado"
    perfil_actualizado = "perfil_actualizado"
    reporte_eliminado = "reporte_eliminado"
    usuario_eliminado = "usuario_eliminado"
    rol_eliminado = "rol_eliminado"
    categoria_eliminada = "categoria_eliminada"
    estado_eliminado = "estado_eliminado"


class Permission(str, Enum):
    ver_reporte = "ver_reporte"
    crear_reporte = "crear_reporte"
    editar_reporte = "editar_reporte"
    eliminar_reporte = "eliminar_reporte"
    ver_usuario = "ver_usuario"
    crear_usuario = "crear_usuario"
    editar_usuario = "editar_usuario"
    eliminar_usuario = "eliminar_usuario"
    ver_categoria = "ver_categoria"
    crear_categoria = "crear_categoria"
    editar_categoria = "editar_categoria"
    eliminar_categoria = "eliminar_categoria"
    ver_estado = "ver_estado"
    crear_estado = "crear_estado"
    editar_estado = "editar_estado"
    eliminar_estado = "eliminar_estado"
    ver_rol = "ver_rol"
    crear_rol = "crear_rol"
    editar_rol = "editar_rol"
    eliminar_rol = "eliminar_rol"
    ver_auditoria = "ver_auditoria"


class Priority(str, Enum):
    urgente = "urgente"
    alto = "alto"
    medio = "medio"
    bajo = "bajo"


# Deleted-record notification sent per table
DELETION_NOTIFICATION_TYPES = {
    "categories": NotificationType.categoria_eliminada,
    "estados": NotificationType.estado_eliminado,
    "roles": NotificationType.rol_eliminado,
    "reportes": NotificationType.reporte_eliminado,
    "profiles": NotificationType.usuario_eliminado,
}
