import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Tag',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('category', models.CharField(choices=[('content', 'Content'), ('acting', 'Acting'), ('audio_visual', 'Audio & visual'), ('theater_experience', 'Theater experience')], default='content', max_length=30)),
                ('is_active', models.BooleanField(default=True)),
                ('display_order', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'tags',
                'ordering': ['category', 'display_order', 'name'],
                'constraints': [
                    models.UniqueConstraint(fields=('name', 'category'), name='unique_tag_name_per_category'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Review',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('movie_id', models.PositiveIntegerField(db_index=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('released', 'Released'), ('deleted', 'Deleted')], default='pending', max_length=20)),
                ('kind', models.CharField(choices=[('tags', 'Structured tags'), ('freeform', 'Freeform')], max_length=20)),
                ('rating', models.FloatField(validators=[django.core.validators.MinValueValidator(1.0), django.core.validators.MaxValueValidator(10.0)])),
                ('body', models.TextField(blank=True, null=True)),
                ('tags', models.JSONField(blank=True, null=True)),
                ('reject_reason', models.TextField(blank=True, null=True)),
                ('score', models.BigIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(blank=True, null=True)),
                ('author', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reviews', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'reviews',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['author', 'movie_id'], name='reviews_author_movie_idx'),
                    models.Index(fields=['movie_id', 'status'], name='reviews_movie_status_idx'),
                    models.Index(fields=['status', 'kind'], name='reviews_status_kind_idx'),
                    models.Index(fields=['created_at'], name='reviews_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Vote',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('value', models.CharField(choices=[('fair', 'Fair'), ('unfair', 'Unfair')], max_length=10)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(blank=True, null=True)),
                ('review', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='votes', to='reviews.review')),
                ('voter', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='votes', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'review_votes',
                'indexes': [
                    models.Index(fields=['review', 'value'], name='review_votes_review_value_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('voter', 'review'), name='unique_vote_per_voter_review'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ScoreJob',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('vote_version', models.PositiveIntegerField()),
                ('author_id', models.BigIntegerField()),
                ('review_id', models.BigIntegerField()),
                ('previous_value', models.CharField(blank=True, choices=[('fair', 'Fair'), ('unfair', 'Unfair')], max_length=10, null=True)),
                ('new_value', models.CharField(choices=[('fair', 'Fair'), ('unfair', 'Unfair')], max_length=10)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('done', 'Done'), ('failed', 'Failed')], default='pending', max_length=10)),
                ('attempts', models.PositiveIntegerField(default=0)),
                ('last_error', models.TextField(blank=True)),
                ('available_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('vote', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='score_jobs', to='reviews.vote')),
            ],
            options={
                'db_table': 'score_jobs',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['status', 'available_at'], name='score_jobs_status_avail_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('vote', 'vote_version'), name='unique_score_job_per_vote_version'),
                ],
            },
        ),
    ]
