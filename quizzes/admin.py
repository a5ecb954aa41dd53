from django import forms
from django.contrib import admin

from .models import Question, Quiz, SubmissionResult, SubmissionTicket


# ----- Forms -----
class QuizAdminForm(forms.ModelForm):
    access_code = forms.CharField(
        required=False,
        strip=True,
        help_text="Stored hashed. Leave blank to keep the current code.",
    )
    clear_access_code = forms.BooleanField(required=False, help_text="Remove the access code requirement.")

    class Meta:
        model = Quiz
        exclude = ("access_code_hash",)

    def save(self, commit=True):
        quiz = super().save(commit=False)
        if self.cleaned_data.get("clear_access_code"):
            quiz.set_access_code(None)
        elif self.cleaned_data.get("access_code"):
            quiz.set_access_code(self.cleaned_data["access_code"])
        if commit:
            quiz.save()
            self.save_m2m()
        return quiz


# ----- Inlines -----
class QuestionInline(admin.TabularInline):
    model = Question
    extra = 1
    fields = ("order", "text", "options", "answer_key", "deleted_at")
    ordering = ("order",)


# ----- ModelAdmins -----
@admin.register(Quiz)
class QuizAdmin(admin.ModelAdmin):
    form = QuizAdminForm
    list_display = ("title", "module_code", "start_at", "end_at", "has_access_code", "created_at")
    list_filter = ("module_code",)
    search_fields = ("title", "module_code", "description")
    date_hierarchy = "start_at"
    filter_horizontal = ("assigned_students",)
    inlines = [QuestionInline]
    readonly_fields = ("created_at", "updated_at")

    def has_access_code(self, obj): return bool(obj.access_code_hash)
    has_access_code.boolean = True


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ("short_text", "quiz", "order", "answer_key", "deleted_at", "created_at")
    list_filter = ("quiz",)
    search_fields = ("text",)
    raw_id_fields = ("quiz",)
    ordering = ("quiz", "order")

    def short_text(self, obj):
        return (obj.text or "")[:80]


@admin.register(SubmissionTicket)
class SubmissionTicketAdmin(admin.ModelAdmin):
    list_display = ("quiz", "student", "state", "issued_at", "expires_at", "consumed_at", "ip_address")
    list_filter = ("state", "quiz")
    search_fields = ("student__username", "student__reg_no", "quiz__title", "ip_address")
    raw_id_fields = ("quiz", "student")

    # tickets only change through the engine
    def has_add_permission(self, request): return False
    def has_change_permission(self, request, obj=None): return False


@admin.register(SubmissionResult)
class SubmissionResultAdmin(admin.ModelAdmin):
    list_display = ("quiz", "student", "score", "correct_count", "total_questions",
                    "time_spent_seconds", "submitted_at")
    list_filter = ("quiz",)
    search_fields = ("student__username", "student__reg_no", "quiz__title")
    raw_id_fields = ("quiz", "student")

    def has_add_permission(self, request): return False
    def has_change_permission(self, request, obj=None): return False
