from typing import Optional

from .config import DEFAULT_LANGUAGE, LANGUAGES

TRANSLATIONS = {
    "es": {
        "category.Hogar.name": "Hogar",
        "category.Hogar.description": "Tareas generales del hogar",
        "category.Limpieza.name": "Limpieza",
        "category.Limpieza.description": "Limpieza y orden de la casa",
        "category.Cocina.name": "Cocina",
        "category.Cocina.description": "Preparación de comidas",
        "category.Compras.name": "Compras",
        "category.Compras.description": "Compras y abastecimiento",
        "status.Pendiente.name": "Pendiente",
        "status.Pendiente.description": "Aún no comienza",
        "status.En progreso.name": "En progreso",
        "status.En progreso.description": "Se está realizando",
        "status.Completada.name": "Completada",
        "status.Completada.description": "Terminada",
        "priority.Baja.name": "Baja",
        "priority.Baja.description": "Puede esperar",
        "priority.Media.name": "Media",
        "priority.Media.description": "Atender pronto",
        "priority.Alta.name": "Alta",
        "priority.Alta.description": "Atender de inmediato",
        "roles.Responsable.name": "Responsable",
        "roles.Responsable.description": "Encargado de completar la tarea",
        "roles.Colaborador.name": "Colaborador",
        "roles.Colaborador.description": "Ayuda con la tarea",
        "roles.Administrador.name": "Administrador",
        "roles.Administrador.description": "Administra el hogar",
        "roles.Miembro.name": "Miembro",
        "roles.Miembro.description": "Vive en el hogar",
        "recurrence.Diaria.name": "Diaria",
        "recurrence.Semanal.name": "Semanal",
        "recurrence.Mensual.name": "Mensual",
        "recurrence.Anual.name": "Anual",
        "recurrence.No se repite.name": "No se repite",
        "typetask.Tarea.name": "Tarea",
        "typetask.Evento.name": "Evento",
        "wishes.Personal.name": "Personal",
        "wishes.Hogar.name": "Hogar",
        "wishes.Profesional.name": "Profesional",
        "notification.task.assigned.title": "Fuiste asociado a la tarea {title}",
        "notification.task.assigned.body": "Tu rol {role}",
        "notification.task.role_changed.title": "Cambió tu rol en la tarea {title}",
        "notification.task.role_changed.body": "Tu nuevo rol {role}",
        "notification.task.removed.title": "Ya no participas en la tarea {title}",
        "notification.task.removed.body": "Tu rol era {role}",
        "notification.task.deleted.title": "La tarea {title} fue eliminada",
        "notification.task.deleted.body": "Tu rol {role}",
        "notification.task.reminder.title": "La tarea {title} comienza pronto",
        "notification.task.reminder.body": "Comienza a las {time}",
        "role.none": "Sin rol",
    },
    "en": {
        "category.Hogar.name": "Home",
        "category.Hogar.description": "General household tasks",
        "category.Limpieza.name": "Cleaning",
        "category.Limpieza.description": "Cleaning and tidying the house",
        "category.Cocina.name": "Cooking",
        "category.Cocina.description": "Meal preparation",
        "category.Compras.name": "Shopping",
        "category.Compras.description": "Shopping and supplies",
        "status.Pendiente.name": "Pending",
        "status.Pendiente.description": "Not started yet",
        "status.En progreso.name": "In progress",
        "status.En progreso.description": "Being worked on",
        "status.Completada.name": "Completed",
        "status.Completada.description": "Done",
        "priority.Baja.name": "Low",
        "priority.Baja.description": "Can wait",
        "priority.Media.name": "Medium",
        "priority.Media.description": "Handle soon",
        "priority.Alta.name": "High",
        "priority.Alta.description": "Handle right away",
        "roles.Responsable.name": "Owner",
        "roles.Responsable.description": "In charge of finishing the task",
        "roles.Colaborador.name": "Helper",
        "roles.Colaborador.description": "Helps with the task",
        "roles.Administrador.name": "Administrator",
        "roles.Administrador.description": "Manages the home",
        "roles.Miembro.name": "Member",
        "roles.Miembro.description": "Lives in the home",
        "recurrence.Diaria.name": "Daily",
        "recurrence.Semanal.name": "Weekly",
        "recurrence.Mensual.name": "Monthly",
        "recurrence.Anual.name": "Yearly",
        "recurrence.No se repite.name": "Does not repeat",
        "typetask.Tarea.name": "Task",
        "typetask.Evento.name": "Event",
        "wishes.Personal.name": "Personal",
        "wishes.Hogar.name": "Household",
        "wishes.Profesional.name": "Professional",
        "notification.task.assigned.title": "You were added to the task {title}",
        "notification.task.assigned.body": "Your role: {role}",
        "notification.task.role_changed.title": "Your role changed in the task {title}",
        "notification.task.role_changed.body": "Your new role: {role}",
        "notification.task.removed.title": "You were removed from the task {title}",
        "notification.task.removed.body": "Your role was {role}",
        "notification.task.deleted.title": "The task {title} was deleted",
        "notification.task.deleted.body": "Your role: {role}",
        "notification.task.reminder.title": "The task {title} starts soon",
        "notification.task.reminder.body": "It starts at {time}",
        "role.none": "No role",
    },
    "pt": {
        "category.Hogar.name": "Casa",
        "category.Hogar.description": "Tarefas gerais da casa",
        "category.Limpieza.name": "Limpeza",
        "category.Cocina.name": "Cozinha",
        "category.Compras.name": "Compras",
        "status.Pendiente.name": "Pendente",
        "status.En progreso.name": "Em andamento",
        "status.Completada.name": "Concluída",
        "priority.Baja.name": "Baixa",
        "priority.Media.name": "Média",
        "priority.Alta.name": "Alta",
        "roles.Responsable.name": "Responsável",
        "roles.Colaborador.name": "Colaborador",
        "roles.Administrador.name": "Administrador",
        "roles.Miembro.name": "Membro",
        "recurrence.Diaria.name": "Diária",
        "recurrence.Semanal.name": "Semanal",
        "recurrence.Mensual.name": "Mensal",
        "recurrence.Anual.name": "Anual",
        "recurrence.No se repite.name": "Não se repete",
        "typetask.Tarea.name": "Tarefa",
        "typetask.Evento.name": "Evento",
        "wishes.Personal.name": "Pessoal",
        "wishes.Hogar.name": "Casa",
        "wishes.Profesional.name": "Profissional",
        "notification.task.assigned.title": "Você foi associado à tarefa {title}",
        "notification.task.assigned.body": "Seu papel: {role}",
        "notification.task.role_changed.title": "Seu papel mudou na tarefa {title}",
        "notification.task.role_changed.body": "Seu novo papel: {role}",
        "notification.task.removed.title": "Você foi removido da tarefa {title}",
        "notification.task.removed.body": "Seu papel era {role}",
        "notification.task.deleted.title": "A tarefa {title} foi excluída",
        "notification.task.deleted.body": "Seu papel: {role}",
        "role.none": "Sem papel",
    },
}


def normalize_language(language: Optional[str]) -> str:
    if language in LANGUAGES:
        return language
    return DEFAULT_LANGUAGE


def lookup(key: str, language: Optional[str] = None) -> Optional[str]:
    """Return the localized string for key, or None when there is none.

    Portuguese and English fall back to the Spanish table, which is complete.
    """
    language = normalize_language(language)
    localized = TRANSLATIONS.get(language, {}).get(key)
    if localized is None and language != "es":
        localized = TRANSLATIONS["es"].get(key)
    return localized


def translate(key: str, default, language: Optional[str] = None):
    localized = lookup(key, language)
    return default if localized is None else localized


def message(key: str, language: Optional[str] = None, **values) -> str:
    template = lookup(key, language) or key
    return template.format(**values)


def translated_name(prefix: str, name: str, language: Optional[str] = None) -> str:
    return translate(f"{prefix}.{name}.name", name, language)


def translated_description(
    prefix: str, name: str, description: Optional[str], language: Optional[str] = None
) -> Optional[str]:
    return translate(f"{prefix}.{name}.description", description, language)
