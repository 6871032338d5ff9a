"""
Create a clinic, all roles, and an admin user for it.

Usage:
    python manage.py bootstrap_clinic --code MAIN --name "Main Street Ortho" \
        --admin-email admin@example.com --admin-password secret

Idempotent: existing clinic/user are reused and roles are ensured.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.authz.models import Role, RoleChoices, User, UserRole
from apps.core.models import Clinic


class Command(BaseCommand):
    help = 'Create a clinic with roles and an admin user'

    def add_arguments(self, parser):
        parser.add_argument('--code', required=True)
        parser.add_argument('--name', required=True)
        parser.add_argument('--timezone', default='UTC')
        parser.add_argument('--admin-email', required=True)
        parser.add_argument('--admin-password', required=True)

    def handle(self, *args, **options):
        clinic, created = Clinic.objects.get_or_create(
            code=options['code'],
            defaults={'name': options['name'], 'timezone': options['timezone']},
        )
        if created:
            self.stdout.write(self.style.SUCCESS(f'Created clinic "{clinic.code}"'))

        for role_choice in RoleChoices:
            _, role_created = Role.objects.get_or_create(name=role_choice)
            if role_created:
                self.stdout.write(self.style.SUCCESS(f'Created role: {role_choice}'))

        email = options['admin_email']
        user = User.objects.filter(email=email).first()
        if user is None:
            user = User.objects.create_user(
                email=email,
                password=options['admin_password'],
                clinic=clinic,
                is_staff=True,
            )
            self.stdout.write(self.style.SUCCESS(f'Created admin "{email}"'))
        elif user.clinic_id and user.clinic_id != clinic.id:
            raise CommandError(f'User "{email}" already belongs to another clinic')
        else:
            user.clinic = clinic
            user.set_password(options['admin_password'])
            user.save()
            self.stdout.write(self.style.WARNING(f'Updated existing user "{email}"'))

        admin_role = Role.objects.get(name=RoleChoices.ADMIN)
        UserRole.objects.get_or_create(user=user, role=admin_role)
        self.stdout.write(self.style.SUCCESS('Done'))
