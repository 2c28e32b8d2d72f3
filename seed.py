"""
示範資料

flask --app app seed-db 會清空資料表後建立三個使用者、三個專案、成員、任務與留言。
所有帳號的密碼都是 password123
"""
from datetime import datetime
import click
from flask.cli import with_appcontext
import logging

from auth import hash_password
from models import db, Comment, Notification, Project, ProjectMember, Task, User

logger = logging.getLogger(__name__)

DEMO_PASSWORD = 'password123'


def seed_database():
    """清空並寫入示範資料,回傳各資料表筆數"""
    # 依照外鍵順序清空
    for model in (Comment, Task, ProjectMember, Project, Notification, User):
        db.session.query(model).delete()

    password_hash = hash_password(DEMO_PASSWORD)

    admin = User(email='admin@example.com', first_name='Admin', last_name='User',
                 role='ADMIN', password_hash=password_hash)
    john = User(email='john@example.com', first_name='John', last_name='Doe',
                role='USER', password_hash=password_hash)
    jane = User(email='jane@example.com', first_name='Jane', last_name='Smith',
                role='USER', password_hash=password_hash)
    db.session.add_all([admin, john, jane])
    db.session.flush()

    website = Project(
        name='Website Redesign',
        description='Complete redesign of company website',
        status='ACTIVE',
        owner_id=admin.id,
        start_date=datetime(2024, 1, 1),
        end_date=datetime(2024, 6, 30),
        members=[
            ProjectMember(user_id=john.id, role='DEVELOPER'),
            ProjectMember(user_id=jane.id, role='DESIGNER')
        ]
    )
    mobile = Project(
        name='Mobile App Development',
        description='Build native mobile apps for iOS and Android',
        status='ACTIVE',
        owner_id=admin.id,
        start_date=datetime(2024, 2, 1),
        end_date=datetime(2024, 12, 31),
        members=[ProjectMember(user_id=john.id, role='LEAD_DEVELOPER')]
    )
    marketing = Project(
        name='Marketing Campaign',
        description='Q1 2024 marketing campaign planning and execution',
        status='COMPLETED',
        owner_id=john.id,
        start_date=datetime(2024, 1, 1),
        end_date=datetime(2024, 3, 31)
    )
    db.session.add_all([website, mobile, marketing])
    db.session.flush()

    # (title, description, status, priority, project, assignee, due date)
    task_rows = [
        ('Design homepage mockup', 'Create high-fidelity mockup for new homepage',
         'DONE', 'HIGH', website, jane, datetime(2024, 1, 15)),
        ('Develop responsive navigation', 'Implement mobile-first navigation component',
         'IN_PROGRESS', 'HIGH', website, john, datetime(2024, 1, 20)),
        ('Setup analytics tracking', 'Integrate Google Analytics 4',
         'TODO', 'MEDIUM', website, john, datetime(2024, 2, 1)),
        ('Content migration', 'Migrate existing content to new CMS',
         'TODO', 'MEDIUM', website, None, datetime(2024, 2, 15)),
        ('Setup React Native project', 'Initialize React Native project with TypeScript',
         'DONE', 'URGENT', mobile, john, datetime(2024, 2, 5)),
        ('Design authentication flow', 'Create user authentication screens and flow',
         'IN_REVIEW', 'HIGH', mobile, admin, datetime(2024, 2, 20)),
        ('Implement push notifications', 'Setup Firebase Cloud Messaging',
         'IN_PROGRESS', 'MEDIUM', mobile, john, datetime(2024, 3, 1)),
        ('Create social media content calendar', 'Plan content for Instagram, Twitter, and LinkedIn',
         'DONE', 'HIGH', marketing, john, datetime(2024, 1, 10)),
        ('Launch email campaign', 'Send newsletter to subscriber list',
         'DONE', 'MEDIUM', marketing, john, datetime(2024, 2, 1)),
    ]

    tasks = []
    for title, description, status, priority, project, assignee, due_date in task_rows:
        tasks.append(Task(
            title=title,
            description=description,
            status=status,
            priority=priority,
            project_id=project.id,
            assignee_id=assignee.id if assignee else None,
            due_date=due_date,
            completed_at=due_date if status == 'DONE' else None
        ))
    db.session.add_all(tasks)
    db.session.flush()

    db.session.add_all([
        Comment(task_id=tasks[0].id, author_id=admin.id, content='Great work on the mockup!'),
        Comment(task_id=tasks[1].id, author_id=jane.id, content='Remember to test on small screens.'),
        Comment(task_id=tasks[5].id, author_id=john.id, content='Ready for review.'),
    ])

    db.session.commit()

    return {
        'users': User.query.count(),
        'projects': Project.query.count(),
        'members': ProjectMember.query.count(),
        'tasks': Task.query.count(),
        'comments': Comment.query.count()
    }


@click.command('seed-db')
@with_appcontext
def seed_db_command():
    """Reset the database and load demo data."""
    db.create_all()
    counts = seed_database()

    click.echo("=" * 60)
    click.echo("示範資料已建立")
    click.echo("=" * 60)
    for table, count in counts.items():
        click.echo(f"  {table}: {count}")
    click.echo(f"\n所有帳號的密碼: {DEMO_PASSWORD}")

    logger.info(f"Database seeded: {counts}")
